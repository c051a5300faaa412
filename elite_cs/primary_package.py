"""Sub-packages read from the robot's primary port."""

from __future__ import annotations

import struct
import threading
from abc import ABC, abstractmethod


class PrimaryPackage(ABC):
    """A primary-port sub-package that callers wait on until it is filled."""

    def __init__(self, package_type: int) -> None:
        self._type = int(package_type)
        self._ready = False
        self._condition = threading.Condition()

    @property
    def package_type(self) -> int:
        return self._type

    @abstractmethod
    def parse(self, data: bytes) -> None:
        """Fill the package from its raw bytes, starting at its sub-header."""

    def wait_update(self, timeout_ms: int) -> bool:
        """Block until the package has been filled or the timeout passes."""
        with self._condition:
            return self._condition.wait_for(lambda: self._ready, timeout_ms / 1000.0)

    def notify_updated(self) -> None:
        with self._condition:
            self._ready = True
            self._condition.notify_all()


class RobotConfPackage(PrimaryPackage):
    """Base of the RobotConfig sub-package."""

    ROBOT_CONFIG_PKG_TYPE = 6

    def __init__(self) -> None:
        super().__init__(self.ROBOT_CONFIG_PKG_TYPE)


class KinematicsInfo(RobotConfPackage):
    """DH parameters carried in the RobotConfig sub-package."""

    # sub length, sub type, joint limits, joint max speed/acc, five defaults
    DH_PARAM_OFFSET = 4 + 1 + 8 * 2 * 6 + 8 * 2 * 6 + 8 * 5
    _DH_BLOCK = struct.Struct(">6d")

    def __init__(self) -> None:
        super().__init__()
        self.dh_a = [0.0] * 6
        self.dh_d = [0.0] * 6
        self.dh_alpha = [0.0] * 6

    def parse(self, data: bytes) -> None:
        data = bytes(data)
        needed = self.DH_PARAM_OFFSET + 3 * self._DH_BLOCK.size
        if len(data) < needed:
            raise ValueError(f"kinematics sub-package needs {needed} bytes, got {len(data)}")
        offset = self.DH_PARAM_OFFSET
        self.dh_a = list(self._DH_BLOCK.unpack_from(data, offset))
        offset += self._DH_BLOCK.size
        self.dh_d = list(self._DH_BLOCK.unpack_from(data, offset))
        offset += self._DH_BLOCK.size
        self.dh_alpha = list(self._DH_BLOCK.unpack_from(data, offset))