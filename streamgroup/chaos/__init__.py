"""Fault injection for the consumer fleet."""

from streamgroup.chaos.controller import ChaosConfig, ChaosController

__all__ = ["ChaosConfig", "ChaosController"]
