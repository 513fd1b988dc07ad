"""Stream producer."""

from streamgroup.producer.producer import NumberProducer, ProducerConfig

__all__ = ["NumberProducer", "ProducerConfig"]
