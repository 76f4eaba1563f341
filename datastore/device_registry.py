from __future__ import annotations

from types import MappingProxyType
from typing import Mapping

from app.schemas import BridgeConfig, DeviceDescriptor


class DeviceNotFoundError(KeyError):
    """Raised when a device ID has no registry entry."""

    def __init__(self, device_id: int) -> None:
        super().__init__(device_id)
        self.device_id = device_id

    def __str__(self) -> str:
        return f"Device {self.device_id} not found in registry."


class DeviceRegistry:

    def __init__(self, devices: Mapping[int, DeviceDescriptor]) -> None:
        self._devices: Mapping[int, DeviceDescriptor] = MappingProxyType(dict(devices))

    def get_item(self, device_id: int) -> DeviceDescriptor | None:
        return self._devices.get(device_id)

    def resolve(self, device_id: int) -> str:
        """Return the location label for ``device_id``."""
        descriptor = self.get_item(device_id)
        if descriptor is None:
            raise DeviceNotFoundError(device_id)
        return descriptor.location

    def __len__(self) -> int:
        return len(self._devices)


def build_registry(config: BridgeConfig) -> DeviceRegistry:
    return DeviceRegistry(config.devices)
