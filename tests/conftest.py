import pytest

from pvcfleet.lib.dataclasses import NetworkDetails, Node
from pvcfleet.lib.errors import CapacityError, ObjectNotFoundError, TransportError
from pvcfleet.lib.fleet import encode_userdata
from pvcfleet.lib.storage import SQLiteStorage


AGENT_NAME = "pvc-fleet-test"


LSHW_TEMPLATE = """
<?xml version="1.0" standalone="yes" ?>
<!-- generated by lshw-B.02.16 -->
<list>
<node id="node1" claimed="true" class="system" handle="DMI:0001">
 <description>Computer</description>
 <product>VirtualBox ()</product>
 <width units="bits">64</width>
  <node id="core" claimed="true" class="bus" handle="DMI:0008">
   <description>Motherboard</description>
    <node id="pci" claimed="true" class="bridge" handle="PCIBUS:0000:00">
     <description>Host bridge</description>{interfaces}
    </node>
  </node>
</node>
</list>
"""

LSHW_INTERFACE = """
      <node id="network:0" claimed="true" class="network" handle="PCI:0000:00:03.0">
       <description>Ethernet interface</description>
       <product>82540EM Gigabit Ethernet Controller</product>
       <logicalname>{name}</logicalname>
       <serial>{mac}</serial>
      </node>"""


def make_lshw(interfaces):
    """Render an lshw report with one network node per MAC -> name entry."""
    rendered = "".join(
        LSHW_INTERFACE.format(mac=mac, name=name) for mac, name in interfaces.items()
    )
    return LSHW_TEMPLATE.format(interfaces=rendered).encode("utf-8")


class FakeFleetSession:
    """
    In-memory stand-in for FleetSession.

    Tracks node ownership, the operations issued per node and the request
    values sent with them, the same way a fleet test server would.
    """

    def __init__(self):
        self.nodes = {}
        self.owned = {}
        self.agent_names = {}
        self.node_operations = {}
        self.node_request_values = {}
        self.nodes_operations = []
        self.networks = {}
        self.connections = []
        self.hardware = {}
        self.files = {}
        self.release_failures = set()
        self.list_failure = None
        self.start_failure = None
        self.timeouts = []

    # Test setup helpers
    def new_node(self, system_id, hostname="", architecture="amd64/generic"):
        self.nodes[system_id] = {
            "system_id": system_id,
            "hostname": hostname,
            "architecture": architecture,
            "resource_uri": f"/api/1.0/nodes/{system_id}/",
        }
        return self._node(system_id)

    def add_node_details(self, system_id, lshw):
        self.hardware[system_id] = lshw

    def new_network(self, name, ip_id=1, vlan_tag=0, netmask="255.255.255.0"):
        self.networks[name] = NetworkDetails(
            name=name,
            ip=f"192.168.{ip_id}.1",
            netmask=netmask,
            vlan_tag=vlan_tag,
            description=f"{name}_{ip_id}_{vlan_tag}",
        )

    def connect(self, system_id, network, mac):
        self.connections.append((system_id, network, mac))

    def _node(self, system_id):
        data = dict(self.nodes[system_id])
        if self.owned.get(system_id):
            data["owner"] = "pvc"
        return Node.from_api(data)

    def _record(self, system_id, operation, values):
        self.node_operations.setdefault(system_id, []).append(operation)
        self.node_request_values.setdefault(system_id, []).append(values)

    # Node operations
    def acquire(self, params, timeout=None):
        self.timeouts.append(timeout)
        for system_id, data in self.nodes.items():
            if self.owned.get(system_id):
                continue
            if "name" in params and data["hostname"] != params["name"][0]:
                continue
            if "arch" in params and not data["architecture"].startswith(params["arch"][0]):
                continue
            self.owned[system_id] = True
            self.agent_names[system_id] = params["agent_name"][0]
            self._record(system_id, "acquire", params)
            return self._node(system_id)
        raise CapacityError("cannot acquire node: No matching node is available. (HTTP Code: 409)")

    def start_node(self, system_id, user_data, series=None, timeout=None):
        if self.start_failure is not None:
            raise self.start_failure
        self._record(
            system_id,
            "start",
            {"user_data": encode_userdata(user_data), "distro_series": series},
        )

    def release_nodes(self, system_ids, timeout=None):
        failing = self.release_failures.intersection(system_ids)
        if failing:
            raise TransportError("release", ",".join(system_ids), 500, "release failed")
        self.nodes_operations.append("release")
        for system_id in system_ids:
            if self.owned.get(system_id):
                self.owned[system_id] = False
                self.agent_names.pop(system_id, None)

    def list_nodes(self, system_ids=None, agent_name=None, timeout=None):
        if self.list_failure is not None:
            raise self.list_failure
        result = []
        for system_id in self.nodes:
            if system_ids and system_id not in system_ids:
                continue
            if agent_name and self.agent_names.get(system_id) != agent_name:
                continue
            result.append(self._node(system_id))
        return result

    def get_hardware_report(self, system_id, timeout=None):
        self._record(system_id, "details", {})
        return self.hardware.get(system_id, b"<list></list>")

    # Network operations
    def list_networks(self, node=None, timeout=None):
        names = []
        for system_id, network, _ in self.connections:
            if node is not None and system_id != node:
                continue
            if network not in names:
                names.append(network)
        return [self.networks[name] for name in names]

    def list_connected_macs(self, network, timeout=None):
        return [mac for _, net, mac in self.connections if net == network]

    # File operations
    def put_file(self, name, data, timeout=None):
        self.files[name] = data

    def get_file(self, name, timeout=None):
        try:
            return self.files[name]
        except KeyError:
            raise ObjectNotFoundError(name)

    def list_files(self, prefix="", timeout=None):
        return sorted(name for name in self.files if name.startswith(prefix))

    def delete_file(self, name, timeout=None):
        self.files.pop(name, None)


@pytest.fixture
def config():
    return {
        "agent_name": AGENT_NAME,
        "debug": False,
        "deploy_series": "jammy",
        "notifications_enabled": False,
    }


@pytest.fixture
def fleet():
    return FakeFleetSession()


@pytest.fixture
def storage(tmp_path):
    return SQLiteStorage(tmp_path / "storage.db")
