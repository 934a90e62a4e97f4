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

"""Query and control systemd units through the systemd manager's D-Bus interface.

Each operation opens a private connection to the system bus, resolves the manager (and the
unit, where needed), makes a single request and closes the connection again. Nothing is
cached between calls.

Failures are raised as subclasses of :class:`Error`, one per step that can fail: reaching
the bus (:class:`BusConnectionError`), finding systemd (:class:`ManagerNotFoundError`),
resolving the unit (:class:`UnitResolutionError`), calling a method
(:class:`RemoteCallError`) and reading a property (:class:`PropertyReadError`).

Example usage
-------------

.. code-block:: python

    import unitcontrol

    if unitcontrol.unit_exists("mysql.service"):
        if unitcontrol.get_unit_state("mysql.service") == "active":
            unitcontrol.stop_unit("mysql.service")

    # Use an explicit client to control how connections are opened
    client = unitcontrol.UnitControlClient(property_timeout=0.5)
    target = client.get_default_target()
"""

from ._unitcontrol import (
    DBUS_PROPERTIES_INTERFACE,
    DEFAULT_CALL_TIMEOUT,
    NO_SUCH_UNIT_ERROR,
    PROPERTY_TIMEOUT,
    SYSTEMD_INTERFACE,
    SYSTEMD_MANAGER_INTERFACE,
    SYSTEMD_OBJECT_PATH,
    SYSTEMD_SERVICE,
    SYSTEMD_UNIT_INTERFACE,
    BusConnectionError,
    BusFactory,
    Error,
    ManagerNotFoundError,
    PropertyReadError,
    PropertyTypeError,
    RemoteCallError,
    UnitControlClient,
    UnitResolutionError,
    disable_unit,
    enable_unit,
    get_default_target,
    get_unit_state,
    stop_unit,
    system_bus,
    unit_exists,
)
from ._version import __version__ as __version__

__all__ = [
    'DBUS_PROPERTIES_INTERFACE',
    'DEFAULT_CALL_TIMEOUT',
    'NO_SUCH_UNIT_ERROR',
    'PROPERTY_TIMEOUT',
    'SYSTEMD_INTERFACE',
    'SYSTEMD_MANAGER_INTERFACE',
    'SYSTEMD_OBJECT_PATH',
    'SYSTEMD_SERVICE',
    'SYSTEMD_UNIT_INTERFACE',
    'BusConnectionError',
    'BusFactory',
    'Error',
    'ManagerNotFoundError',
    'PropertyReadError',
    'PropertyTypeError',
    'RemoteCallError',
    'UnitControlClient',
    'UnitResolutionError',
    'disable_unit',
    'enable_unit',
    'get_default_target',
    'get_unit_state',
    'stop_unit',
    'system_bus',
    'unit_exists',
]
