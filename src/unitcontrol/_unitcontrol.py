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

"""Control systemd units over the system D-Bus."""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Callable, Iterator
from typing import Any

import dbus
import dbus.bus
import dbus.exceptions

_logger = logging.getLogger(__name__)

SYSTEMD_SERVICE = 'org.freedesktop.systemd1'
SYSTEMD_OBJECT_PATH = '/org/freedesktop/systemd1'
SYSTEMD_INTERFACE = 'org.freedesktop.systemd1'
SYSTEMD_MANAGER_INTERFACE = 'org.freedesktop.systemd1.Manager'
SYSTEMD_UNIT_INTERFACE = 'org.freedesktop.systemd1.Unit'
DBUS_PROPERTIES_INTERFACE = 'org.freedesktop.DBus.Properties'
NO_SUCH_UNIT_ERROR = 'org.freedesktop.systemd1.NoSuchUnit'

# Seconds. A negative timeout leaves the choice to libdbus.
DEFAULT_CALL_TIMEOUT = -1.0
PROPERTY_TIMEOUT = 1.5

BusFactory = Callable[[], dbus.bus.BusConnection]


class Error(Exception):
    """Base class of all errors raised by this library."""

    def __init__(self, message: str, dbus_name: str | None = None) -> None:
        super().__init__(message)
        self.dbus_name = dbus_name

    @property
    def message(self) -> str:
        """Return the message passed as an argument."""
        return self.args[0]


class BusConnectionError(Error):
    """Raised when the system bus cannot be reached."""


class ManagerNotFoundError(Error):
    """Raised when the systemd manager is not registered on the bus."""


class UnitResolutionError(Error):
    """Raised when the manager cannot resolve a unit name to an object path."""


class RemoteCallError(Error):
    """Raised when a method call on a resolved object fails."""


class PropertyReadError(Error):
    """Raised when reading a unit property fails or times out."""


class PropertyTypeError(PropertyReadError):
    """Raised when a unit property does not hold the expected D-Bus type."""


def system_bus() -> dbus.bus.BusConnection:
    """Open a private connection to the system bus.

    The shared ``dbus.SystemBus()`` singleton must never be closed, so every call gets its
    own connection instead.
    """
    return dbus.SystemBus(private=True)


def _describe(e: dbus.exceptions.DBusException) -> str:
    return e.get_dbus_message() or e.get_dbus_name() or 'unknown error'


def _check_unit(unit: str) -> None:
    if not unit:
        raise ValueError('unit name must not be empty')


class UnitControlClient:
    """Synchronous client for the systemd manager.

    Every operation opens its own connection with ``bus_factory``, resolves the objects it
    needs, performs the call and closes the connection again. Nothing is shared between
    calls, so a single client can be used from several threads.

    Args:
        bus_factory: Zero-argument callable returning a new bus connection.
        call_timeout: Timeout in seconds for method calls; negative uses the libdbus default.
        property_timeout: Timeout in seconds for property reads.
    """

    def __init__(
        self,
        bus_factory: BusFactory = system_bus,
        call_timeout: float = DEFAULT_CALL_TIMEOUT,
        property_timeout: float = PROPERTY_TIMEOUT,
    ) -> None:
        self._bus_factory = bus_factory
        self._call_timeout = call_timeout
        self._property_timeout = property_timeout

    @contextlib.contextmanager
    def _connect(self) -> Iterator[dbus.bus.BusConnection]:
        try:
            bus = self._bus_factory()
        except dbus.exceptions.DBusException as e:
            raise BusConnectionError(
                f'failed to get bus: {_describe(e)}', dbus_name=e.get_dbus_name()
            ) from None
        try:
            yield bus
        finally:
            bus.close()

    def _get_manager(self, bus: dbus.bus.BusConnection) -> dbus.Interface:
        _logger.debug('looking up %s at %s', SYSTEMD_SERVICE, SYSTEMD_OBJECT_PATH)
        try:
            proxy = bus.get_object(SYSTEMD_SERVICE, SYSTEMD_OBJECT_PATH, introspect=False)
        except dbus.exceptions.DBusException as e:
            raise ManagerNotFoundError(
                f'failed to find {SYSTEMD_SERVICE}: {_describe(e)}', dbus_name=e.get_dbus_name()
            ) from None
        return dbus.Interface(proxy, dbus_interface=SYSTEMD_MANAGER_INTERFACE)

    def _get_unit_path(self, manager: dbus.Interface, unit: str) -> str:
        _logger.debug('resolving unit %s', unit)
        try:
            path = manager.GetUnit(unit, signature='s', timeout=self._call_timeout)
        except dbus.exceptions.DBusException as e:
            raise UnitResolutionError(
                f'failed to find {unit}: {_describe(e)}', dbus_name=e.get_dbus_name()
            ) from None
        _logger.debug('unit %s resolved to %s', unit, path)
        return str(path)

    def _get_unit_proxy(
        self, bus: dbus.bus.BusConnection, manager: dbus.Interface, unit: str
    ) -> dbus.Interface:
        path = self._get_unit_path(manager, unit)
        _logger.debug('looking up unit object %s', path)
        try:
            proxy = bus.get_object(SYSTEMD_SERVICE, path, introspect=False)
        except dbus.exceptions.DBusException as e:
            raise RemoteCallError(
                f'failed to register proxy for {path}: {_describe(e)}',
                dbus_name=e.get_dbus_name(),
            ) from None
        return dbus.Interface(proxy, dbus_interface=SYSTEMD_INTERFACE)

    def _call(self, proxy: dbus.Interface, method: str, *args: Any, signature: str = '') -> Any:
        _logger.debug('calling %s%s', method, args)
        try:
            result = proxy.get_dbus_method(method)(
                *args, signature=signature, timeout=self._call_timeout
            )
        except dbus.exceptions.DBusException as e:
            raise RemoteCallError(
                f'failed to call {method}: {_describe(e)}', dbus_name=e.get_dbus_name()
            ) from None
        _logger.debug('%s returned %r', method, result)
        return result

    def get_default_target(self) -> str:
        """Return the unit systemd boots into by default, e.g. ``graphical.target``.

        Raises:
            BusConnectionError: The system bus is unreachable.
            ManagerNotFoundError: systemd is not registered on the bus.
            RemoteCallError: The ``GetDefaultTarget`` call failed.
        """
        with self._connect() as bus:
            manager = self._get_manager(bus)
            return str(self._call(manager, 'GetDefaultTarget'))

    def stop_unit(self, unit: str) -> bool:
        """Queue a stop job for a unit, replacing any conflicting queued job.

        The call returns as soon as systemd accepts the job; it does not wait for the
        unit to actually stop.

        The request is sent as ``StopUnit(unit, 'replace')`` on the unit's own object, which
        systemd does not implement there, so a real manager answers with ``UnknownMethod``.

        Args:
            unit: The name of the unit to stop.

        Returns:
            On success, this function returns True for historical reasons.

        Raises:
            ValueError: ``unit`` is empty.
            UnitResolutionError: systemd does not know the unit.
            RemoteCallError: The stop request was rejected.
        """
        _check_unit(unit)
        with self._connect() as bus:
            manager = self._get_manager(bus)
            proxy = self._get_unit_proxy(bus, manager, unit)
            self._call(proxy, 'StopUnit', unit, 'replace', signature='ss')
        return True

    def get_unit_state(self, unit: str) -> str:
        """Return the ``ActiveState`` of a unit, e.g. ``active``, ``inactive`` or ``failed``.

        The property read is bounded by ``property_timeout`` rather than the call timeout.

        Args:
            unit: The name of the unit to inspect.

        Raises:
            ValueError: ``unit`` is empty.
            UnitResolutionError: systemd does not know the unit.
            PropertyReadError: The property could not be read in time.
            PropertyTypeError: The property value was not a string.
        """
        _check_unit(unit)
        with self._connect() as bus:
            manager = self._get_manager(bus)
            path = self._get_unit_path(manager, unit)
            _logger.debug('reading ActiveState of %s', path)
            try:
                value = bus.call_blocking(
                    SYSTEMD_SERVICE,
                    path,
                    DBUS_PROPERTIES_INTERFACE,
                    'Get',
                    'ss',
                    (SYSTEMD_UNIT_INTERFACE, 'ActiveState'),
                    timeout=self._property_timeout,
                )
            except dbus.exceptions.DBusException as e:
                raise PropertyReadError(
                    f'failed to get ActiveState: {_describe(e)}', dbus_name=e.get_dbus_name()
                ) from None
        if not isinstance(value, dbus.String):
            raise PropertyTypeError(
                f'failed to get ActiveState: expected a string, got {type(value).__name__}'
            )
        _logger.debug('unit %s is %s', unit, value)
        return str(value)

    def enable_unit(self, unit: str) -> bool:
        """Enable a unit file for the running system only, overwriting conflicting links.

        Args:
            unit: The name of the unit file to enable.

        Returns:
            On success, this function returns True for historical reasons.

        Raises:
            ValueError: ``unit`` is empty.
            RemoteCallError: ``EnableUnitFiles`` failed.
        """
        _check_unit(unit)
        with self._connect() as bus:
            manager = self._get_manager(bus)
            self._call(manager, 'EnableUnitFiles', [unit], True, True, signature='asbb')
        return True

    def disable_unit(self, unit: str) -> bool:
        """Disable a unit file for the running system only.

        Args:
            unit: The name of the unit file to disable.

        Returns:
            On success, this function returns True for historical reasons.

        Raises:
            ValueError: ``unit`` is empty.
            RemoteCallError: ``DisableUnitFiles`` failed.
        """
        _check_unit(unit)
        with self._connect() as bus:
            manager = self._get_manager(bus)
            self._call(manager, 'DisableUnitFiles', [unit], True, signature='asb')
        return True

    def unit_exists(self, unit: str) -> bool:
        """Report whether systemd currently knows a unit.

        Args:
            unit: The name of the unit to look up.

        Returns:
            True if the manager resolves the unit; False if it reports ``NoSuchUnit``.

        Raises:
            ValueError: ``unit`` is empty.
            UnitResolutionError: The lookup failed for any other reason.
        """
        _check_unit(unit)
        with self._connect() as bus:
            manager = self._get_manager(bus)
            try:
                self._get_unit_path(manager, unit)
            except UnitResolutionError as e:
                if e.dbus_name != NO_SUCH_UNIT_ERROR:
                    raise
                return False
        return True


def get_default_target() -> str:
    """Return the default boot target. See :meth:`UnitControlClient.get_default_target`."""
    return UnitControlClient().get_default_target()


def stop_unit(unit: str) -> bool:
    """Stop a unit. See :meth:`UnitControlClient.stop_unit`."""
    return UnitControlClient().stop_unit(unit)


def get_unit_state(unit: str) -> str:
    """Return a unit's ActiveState. See :meth:`UnitControlClient.get_unit_state`."""
    return UnitControlClient().get_unit_state(unit)


def enable_unit(unit: str) -> bool:
    """Enable a unit file. See :meth:`UnitControlClient.enable_unit`."""
    return UnitControlClient().enable_unit(unit)


def disable_unit(unit: str) -> bool:
    """Disable a unit file. See :meth:`UnitControlClient.disable_unit`."""
    return UnitControlClient().disable_unit(unit)


def unit_exists(unit: str) -> bool:
    """Report whether a unit exists. See :meth:`UnitControlClient.unit_exists`."""
    return UnitControlClient().unit_exists(unit)
