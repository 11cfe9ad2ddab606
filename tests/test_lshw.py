import pytest

from pvcfleet.lib.errors import ParseError
from pvcfleet.lib.lshw import extract_interfaces

from conftest import make_lshw


# A typical lshw XML dump with lots of things left out.
LSHW_EXTRACT_INTERFACES = b"""
<?xml version="1.0" standalone="yes" ?>
<!-- generated by lshw-B.02.16 -->
<list>
<node id="machine" claimed="true" class="system" handle="DMI:0001">
 <description>Notebook</description>
 <product>MyMachine</product>
 <version>1.0</version>
 <width units="bits">64</width>
  <node id="core" claimed="true" class="bus" handle="DMI:0002">
   <description>Motherboard</description>
    <node id="cpu" claimed="true" class="processor" handle="DMI:0004">
     <description>CPU</description>
      <node id="pci:2" claimed="true" class="bridge" handle="PCIBUS:0000:03">
        <node id="network" claimed="true" class="network" handle="PCI:0000:03:00.0">
         <logicalname>wlan0</logicalname>
         <serial>aa:bb:cc:dd:ee:ff</serial>
        </node>
        <node id="network" claimed="true" class="network" handle="PCI:0000:04:00.0">
         <logicalname>eth0</logicalname>
         <serial>aa:bb:cc:dd:ee:f1</serial>
        </node>
      </node>
    </node>
  </node>
  <node id="network:0" claimed="true" class="network" handle="">
   <logicalname>vnet1</logicalname>
   <serial>aa:bb:cc:dd:ee:f2</serial>
  </node>
</node>
</list>
"""


def test_extract_interfaces_at_any_depth():
    interfaces = extract_interfaces(LSHW_EXTRACT_INTERFACES)
    assert interfaces == {
        "aa:bb:cc:dd:ee:ff": "wlan0",
        "aa:bb:cc:dd:ee:f1": "eth0",
        "aa:bb:cc:dd:ee:f2": "vnet1",
    }


def test_extract_interfaces_keeps_document_order():
    interfaces = extract_interfaces(LSHW_EXTRACT_INTERFACES)
    assert list(interfaces.values()) == ["wlan0", "eth0", "vnet1"]


def test_extract_interfaces_from_generated_report():
    template = {"aa:bb:cc:dd:ee:f0": "eth0", "aa:bb:cc:dd:ee:f1": "eth1"}
    assert extract_interfaces(make_lshw(template)) == template


def test_extract_interfaces_skips_incomplete_network_nodes():
    report = b"""<list>
<node id="network:0" class="network">
 <logicalname>eth0</logicalname>
</node>
<node id="network:1" class="network">
 <serial>aa:bb:cc:dd:ee:01</serial>
</node>
<node id="network:2" class="network">
 <logicalname></logicalname>
 <serial>aa:bb:cc:dd:ee:02</serial>
</node>
<node id="network:3">
 <logicalname>eth3</logicalname>
 <serial>aa:bb:cc:dd:ee:03</serial>
</node>
<node id="network:4" class="network">
 <logicalname>eth4</logicalname>
 <serial>AA:BB:CC:DD:EE:04</serial>
</node>
</list>"""
    assert extract_interfaces(report) == {"aa:bb:cc:dd:ee:04": "eth4"}


def test_extract_interfaces_duplicate_mac_last_wins():
    report = b"""<list>
<node class="network"><logicalname>eth0</logicalname><serial>aa:bb:cc:dd:ee:01</serial></node>
<node class="network"><logicalname>br0</logicalname><serial>aa:bb:cc:dd:ee:01</serial></node>
</list>"""
    assert extract_interfaces(report) == {"aa:bb:cc:dd:ee:01": "br0"}


def test_extract_interfaces_accepts_text():
    assert extract_interfaces("<list></list>") == {}


@pytest.mark.parametrize("report", [b"", b"<list><node>", b"not xml at all"])
def test_extract_interfaces_malformed(report):
    with pytest.raises(ParseError):
        extract_interfaces(report)
