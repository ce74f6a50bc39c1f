"""Parsers that turn ipmitool text output into structured records."""
from __future__ import annotations

import logging
import re
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

logger = logging.getLogger(__name__)

_READING_PATTERN = re.compile(r"^(-?\d+(?:\.\d+)?)\s+(.+)$")
_SENSOR_NUMBER_PATTERN = re.compile(r"^(.*?)\s*(#0x[0-9a-fA-F]+)$")
_FAULT_STATES = ("fault", "failure", "failed", "critical", "predictive")


def _camel_case(label: str) -> str:
    """Convert an ipmitool field label ("Free Space") to camelCase."""
    words = re.findall(r"[A-Za-z0-9]+", label)
    if not words:
        return ""
    return words[0].lower() + "".join(w[:1].upper() + w[1:].lower() for w in words[1:])


def _split_pipe_rows(text: str, min_cells: int) -> List[List[str]]:
    rows: List[List[str]] = []
    for line in text.splitlines():
        if "|" not in line:
            continue
        cells = [cell.strip() for cell in line.split("|")]
        if len(cells) < min_cells:
            logger.debug("Skipping short ipmitool row: %r", line)
            continue
        rows.append(cells)
    return rows


def _split_reading(reading: str) -> Dict[str, str]:
    match = _READING_PATTERN.match(reading)
    if match:
        return {"sensorReading": match.group(1), "sensorReadingUnits": match.group(2)}
    return {"sensorReading": reading, "sensorReadingUnits": ""}


def parse_key_value_data(text: str) -> Dict[str, str]:
    """Parse ``Label : value`` lines; continuation lines without a label are dropped."""
    result: Dict[str, str] = {}
    for line in text.splitlines():
        if ":" not in line:
            continue
        label, value = line.split(":", 1)
        key = _camel_case(label)
        if not key:
            continue
        result[key] = value.strip()
    return result


def parse_key_value_blocks(text: str) -> List[Dict[str, str]]:
    """Parse blank-line separated ``Label : value`` blocks (e.g. ``fru``)."""
    blocks = [block for block in re.split(r"\n\s*\n", text) if block.strip()]
    return [parsed for parsed in map(parse_key_value_data, blocks) if parsed]


def parse_sel_information_data(text: str) -> Dict[str, str]:
    """Parse ``ipmitool sel info``."""
    return parse_key_value_data(text)


def parse_sel_data(text: str) -> List[Dict[str, str]]:
    """Parse ``ipmitool sel list`` rows.

    ``   1 | 03/18/2016 | 17:37:23 | Power Supply #0x51 | Failure detected | Asserted``
    """
    entries: List[Dict[str, str]] = []
    for cells in _split_pipe_rows(text, 5):
        sensor = cells[3]
        match = _SENSOR_NUMBER_PATTERN.match(sensor)
        entries.append({
            "logId": cells[0],
            "date": cells[1],
            "time": cells[2],
            "sensorType": match.group(1) if match else sensor,
            "sensorNumber": match.group(2) if match else "",
            "event": cells[4],
            "value": cells[5] if len(cells) > 5 else "",
        })
    return entries


def parse_sdr_data(text: str) -> List[Dict[str, str]]:
    """Parse ``ipmitool sdr elist`` rows.

    ``Inlet Temp       | 04h | ok  |  7.1 | 23 degrees C``
    """
    sensors: List[Dict[str, str]] = []
    for cells in _split_pipe_rows(text, 5):
        sensor = {
            "sensorId": cells[0],
            "entryId": cells[1],
            "status": cells[2],
            "entityId": cells[3],
        }
        sensor.update(_split_reading(cells[4]))
        sensors.append(sensor)
    return sensors


def parse_sdr_summary_data(text: str) -> List[Dict[str, str]]:
    """Parse the three-column ``ipmitool sdr`` listing."""
    sensors: List[Dict[str, str]] = []
    for cells in _split_pipe_rows(text, 3):
        sensor = {"sensorId": cells[0], "status": cells[2]}
        sensor.update(_split_reading(cells[1]))
        sensors.append(sensor)
    return sensors


def parse_chassis_data(text: str) -> Dict[str, Any]:
    """Parse ``ipmitool chassis status``; adds a boolean ``power`` flag."""
    status: Dict[str, Any] = parse_key_value_data(text)
    status["power"] = str(status.get("systemPower", "")).lower() == "on"
    return status


def parse_drive_health_data(text: str) -> List[Dict[str, Any]]:
    """Parse ``ipmitool sdr type "Drive Slot / Bay"`` rows.

    ``Drive 1          | 61h | ok  |  4.2 | Drive Present, Drive Fault``
    """
    drives: List[Dict[str, Any]] = []
    for cells in _split_pipe_rows(text, 5):
        states = [state.strip() for state in cells[4].split(",") if state.strip()]
        faulted = any(
            token in state.lower() for state in states for token in _FAULT_STATES
        )
        drives.append({
            "name": cells[0],
            "entryId": cells[1],
            "status": cells[2],
            "entityId": cells[3],
            "states": states,
            "healthy": cells[2].lower() == "ok" and not faulted,
        })
    return drives


# Catalog commands with a known output layout, keyed by the ipmitool arguments.
CATALOG_PARSERS: Dict[str, Callable[[str], Any]] = {
    "sdr": parse_sdr_summary_data,
    "sdr elist": parse_sdr_data,
    "sel": parse_sel_information_data,
    "sel info": parse_sel_information_data,
    "sel list": parse_sel_data,
    "lan print": parse_key_value_data,
    "chassis status": parse_chassis_data,
    "bmc info": parse_key_value_data,
    "mc info": parse_key_value_data,
    "fru": parse_key_value_blocks,
    "fru print": parse_key_value_blocks,
}


def catalog_source(command: str) -> str:
    """Return the catalog source label for an ipmitool command string."""
    return "ipmi-" + "-".join(command.split())


def _normalize_command(command: str) -> str:
    return " ".join(command.split()).lower()


def parse_tasks(task_results: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Convert raw catalog command results into catalog candidate records.

    Each task result carries ``cmd``, ``stdout`` and optionally ``error``.
    Failed commands yield ``{"source", "error"}``; commands without a known
    parser yield their raw output with ``store`` false.
    """
    parsed: List[Dict[str, Any]] = []
    for task in task_results:
        command = str(task.get("cmd", ""))
        source = catalog_source(command)
        error: Optional[Any] = task.get("error")
        if error:
            parsed.append({"source": source, "error": error})
            continue

        stdout = task.get("stdout") or ""
        parser = CATALOG_PARSERS.get(_normalize_command(command))
        if parser is None:
            logger.debug("No catalog parser for ipmi command '%s'", command)
            parsed.append({"source": source, "data": stdout, "store": False})
            continue

        try:
            data = parser(stdout)
        except Exception as exc:
            logger.warning("Failed to parse output of ipmi command '%s': %s", command, exc)
            parsed.append({"source": source, "error": str(exc)})
            continue
        parsed.append({"source": source, "data": data, "store": True})
    return parsed
