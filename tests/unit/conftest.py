# Copyright 2025 Canonical Ltd.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
# http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Fixtures for unit tests, replacing the system bus with an in-memory systemd."""

from __future__ import annotations

import dataclasses
import time
from typing import Any, Callable

import dbus
import dbus.exceptions
import pytest

import unitcontrol

NO_REPLY_ERROR = 'org.freedesktop.DBus.Error.NoReply'


@dataclasses.dataclass
class RecordedCall:
    path: str
    interface: str
    method: str
    args: tuple[Any, ...]
    signature: str | None
    timeout: float


def unit_path(unit: str) -> str:
    """Escape a unit name into an object path the way systemd does."""
    escaped = ''.join(c if c.isalnum() else f'_{ord(c):02x}' for c in unit)
    return f'{unitcontrol.SYSTEMD_OBJECT_PATH}/unit/{escaped}'


class FakeObject:
    def __init__(self, systemd: FakeSystemd, path: str) -> None:
        self._systemd = systemd
        self.path = path

    def get_dbus_method(
        self, member: str, dbus_interface: str | None = None
    ) -> Callable[..., Any]:
        def method(*args: Any, signature: str | None = None, timeout: float = -1.0) -> Any:
            return self._systemd.handle(
                RecordedCall(self.path, dbus_interface or '', member, args, signature, timeout)
            )

        return method


class FakeBus:
    def __init__(self, systemd: FakeSystemd) -> None:
        self._systemd = systemd

    def get_object(self, bus_name: str, object_path: str, introspect: bool = True) -> FakeObject:
        assert bus_name == unitcontrol.SYSTEMD_SERVICE
        assert not introspect
        if object_path == unitcontrol.SYSTEMD_OBJECT_PATH:
            if self._systemd.manager_error is not None:
                raise self._systemd.manager_error
        elif self._systemd.unit_proxy_error is not None:
            raise self._systemd.unit_proxy_error
        return FakeObject(self._systemd, object_path)

    def call_blocking(
        self,
        bus_name: str,
        object_path: str,
        dbus_interface: str,
        method: str,
        signature: str | None,
        args: tuple[Any, ...],
        timeout: float = -1.0,
    ) -> Any:
        assert bus_name == unitcontrol.SYSTEMD_SERVICE
        return self._systemd.handle(
            RecordedCall(object_path, dbus_interface, method, tuple(args), signature, timeout)
        )

    def close(self) -> None:
        self._systemd.closed += 1


class FakeSystemd:
    """A systemd manager that answers from ``units`` and records every remote call."""

    def __init__(self) -> None:
        self.units: dict[str, str] = {}
        self.default_target = 'graphical.target'
        self.calls: list[RecordedCall] = []
        self.opened = 0
        self.closed = 0
        self.bus_error: dbus.exceptions.DBusException | None = None
        self.manager_error: dbus.exceptions.DBusException | None = None
        self.unit_proxy_error: dbus.exceptions.DBusException | None = None
        self.method_errors: dict[str, dbus.exceptions.DBusException] = {}
        # Seconds the property endpoint stalls before answering.
        self.property_delay = 0.0
        self.property_value: Any = None

    def bus_factory(self) -> FakeBus:
        if self.bus_error is not None:
            raise self.bus_error
        self.opened += 1
        return FakeBus(self)

    def handle(self, call: RecordedCall) -> Any:
        self.calls.append(call)
        if call.method in self.method_errors:
            raise self.method_errors[call.method]
        if call.method == 'GetUnit':
            (name,) = call.args
            if name not in self.units:
                raise dbus.exceptions.DBusException(
                    f'Unit {name} not loaded.', name=unitcontrol.NO_SUCH_UNIT_ERROR
                )
            return dbus.ObjectPath(unit_path(name))
        if call.method == 'GetDefaultTarget':
            return dbus.String(self.default_target)
        if call.method == 'StopUnit':
            return dbus.ObjectPath(f'{unitcontrol.SYSTEMD_OBJECT_PATH}/job/42')
        if call.method == 'EnableUnitFiles':
            return (dbus.Boolean(False), dbus.Array([], signature='(sss)'))
        if call.method == 'DisableUnitFiles':
            return dbus.Array([], signature='(sss)')
        if call.method == 'Get':
            return self._get_property(call)
        raise dbus.exceptions.DBusException(
            f'Unknown method {call.method}', name='org.freedesktop.DBus.Error.UnknownMethod'
        )

    def _get_property(self, call: RecordedCall) -> Any:
        if self.property_delay:
            limit = call.timeout if call.timeout >= 0 else 25.0
            time.sleep(min(self.property_delay, limit))
            if self.property_delay > limit:
                raise dbus.exceptions.DBusException(
                    'Did not receive a reply.', name=NO_REPLY_ERROR
                )
        if self.property_value is not None:
            return self.property_value
        states = {unit_path(name): state for name, state in self.units.items()}
        return dbus.String(states[call.path], variant_level=1)

    def methods(self) -> list[str]:
        return [call.method for call in self.calls]


@pytest.fixture(scope='function')
def fake_systemd() -> FakeSystemd:
    systemd = FakeSystemd()
    systemd.units['myservice.service'] = 'active'
    systemd.units['cron.service'] = 'inactive'
    return systemd


@pytest.fixture(scope='function')
def client(fake_systemd: FakeSystemd) -> unitcontrol.UnitControlClient:
    return unitcontrol.UnitControlClient(bus_factory=fake_systemd.bus_factory)
