"""Transports (MQTT, serial) behind the Device/Channel contract."""

from .base import BaseChannel, Channel, Device, FrameQueue
from .mqtt import MqttDevice, MqttRouter
from .serial import SerialDevice

__all__ = [
    "BaseChannel",
    "Channel",
    "Device",
    "FrameQueue",
    "MqttDevice",
    "MqttRouter",
    "SerialDevice",
]
