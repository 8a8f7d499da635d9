"""Built-in example tables for trying the layouts without importing data."""

from __future__ import annotations

from groupgraph_mcp.models import Record


def make_record(group: str, node: str, linked_to: str = "", label: str = "") -> Record:
    """Shorthand row: id is ``"{group}-{node}"``, *linked_to* is another row's id."""
    return Record(group=group, node=node, linked_id=linked_to, link_label=label)


n = make_record

QUICK_TOUR = [
    n("Data Format", "Group Column", "Data Format-Node Column", "contains"),
    n("Data Format", "Node Column", "Data Format-Linked To", "connects via"),
    n("Data Format", "Linked To"),
    n("Data Format", "Label"),
    n("Group Operations", "Hide from Canvas", "Canvas Features-Diagram Updates", "eye icon"),
    n("Group Operations", "Collapse in Table"),
    n("Group Operations", "Show All Groups"),
    n("Group Operations", "Clone Group"),
    n("Group Operations", "Delete Entire Group"),
    n("Node Operations", "Add New Row"),
    n("Node Operations", "Delete Node"),
    n("Node Operations", "Duplicate Row"),
    n("Node Operations", "Click-to-Link", "Node Operations-Add New Row", "then click"),
    n("Node Operations", "Clear Link"),
    n("Table Operations", "Edit Any Cell", "Canvas Features-Diagram Updates", "click + type"),
    n("Table Operations", "Sort by Column"),
    n("Table Operations", "Undo and Redo"),
    n("Table Operations", "Optimal Fit"),
    n("Canvas Features", "Zoom In/Out"),
    n("Canvas Features", "Pan Around"),
    n("Canvas Features", "Toggle TB/LR"),
    n("Canvas Features", "Fit to Screen"),
    n("Canvas Features", "Diagram Updates", "Data Format-Group Column", "from table"),
    n("Top Menu", "Import File", "Data Format-Group Column", "CSV or Excel"),
    n("Top Menu", "Export Options"),
    n("Top Menu", "Clear Table"),
    n("Top Menu", "Help Button"),
    n("Top Menu", "Load Example"),
]

HOME_NETWORK = [
    n("ISP", "Fiber Entry", "ISP-ONT", "fiber optic"),
    n("ISP", "ONT", "Network Core-Router WAN", "Ethernet"),
    n("Network Core", "Router WAN", "Network Core-Router", "Cat6"),
    n("Network Core", "Router", "Network Core-Switch", "Ethernet"),
    n("Network Core", "Switch", "Wired Devices-Desktop", "Cat6"),
    n("Network Core", "WiFi AP", "Wireless-MacBook", "5GHz"),
    n("Wired Devices", "Desktop", "Network Core-Switch", "Cat6"),
    n("Wired Devices", "NAS", "Network Core-Switch", "Cat6"),
    n("Wired Devices", "Smart TV", "Network Core-Switch", "Cat6"),
    n("Wired Devices", "Game Console", "Network Core-Switch", "Cat6"),
    n("Wireless", "MacBook"),
    n("Wireless", "iPhone", "Network Core-WiFi AP", "5GHz"),
    n("Wireless", "iPad", "Network Core-WiFi AP", "5GHz"),
    n("Wireless", "Work Laptop", "Network Core-WiFi AP", "5GHz"),
    n("Smart Home", "Hub", "Network Core-Router", "Ethernet"),
    n("Smart Home", "Thermostat", "Smart Home-Hub", "Zigbee"),
    n("Smart Home", "Door Lock", "Smart Home-Hub", "Zigbee"),
    n("Smart Home", "Cameras", "Smart Home-Hub", "WiFi"),
    n("Smart Home", "Light Switches", "Smart Home-Hub", "Zigbee"),
    n("Backup", "UPS", "Network Core-Router", "power"),
]

INDUSTRIAL_WIRING = [
    n("DC Backbone", "24V"),
    n("DC Backbone", "0V"),
    n("PLC Rack", "24V Feed", "DC Backbone-24V", "F01-Red"),
    n("PLC Rack", "Ground", "DC Backbone-0V", "F01-Black"),
    n("PLC Rack", "DO_Start", "Motor 1-Start Trigger", "W102"),
    n("PLC Rack", "DI_Running", "Motor 1-Status", "W103"),
    n("PLC Rack", "AI_Temperature"),
    n("Motor 1", "24V Supply", "DC Backbone-24V", "F02-Red"),
    n("Motor 1", "Ground", "DC Backbone-0V", "F02-Black"),
    n("Motor 1", "Start Trigger"),
    n("Motor 1", "Status"),
    n("Sensor Array", "Power +", "DC Backbone-24V", "F03-Red"),
    n("Sensor Array", "Power -", "DC Backbone-0V", "F03-Black"),
    n("Sensor Array", "Signal Out", "PLC Rack-AI_Temperature", "SIG-101"),
]

DEMOS: dict[str, list[Record]] = {
    "Quick Tour": QUICK_TOUR,
    "Home Network": HOME_NETWORK,
    "Industrial Wiring": INDUSTRIAL_WIRING,
}


def get_demo(name: str) -> list[Record]:
    """Look up a demo by name (case-insensitive); raises KeyError if unknown."""
    for key, records in DEMOS.items():
        if key.lower() == name.strip().lower():
            return list(records)
    raise KeyError(name)
