import math

import numpy as np

from gyroaim.control.display_provider import AimDisplayFrame, TuiDisplayProvider, connection_line


def _frame(connected=True, age=1.5):
    return AimDisplayFrame(
        connected=connected,
        remote_address="192.168.0.42" if connected else "",
        last_packet_age=age,
        target=np.array([10.0, -20.0]),
        position=np.array([8.0, -15.0]),
        pitch_deg=3.0,
        yaw_deg=-4.0,
        processing=connected,
        stats={"orientation_packets": 120, "command_packets": 2, "decode_errors": 1},
    )


def test_connection_line_connected():
    assert connection_line(_frame()) == "Connected IP: 192.168.0.42 / LastPacket 1.5s ago"


def test_connection_line_waiting():
    assert connection_line(_frame(connected=False, age=math.inf)) == "Waiting for packets..."


def test_tui_mirrors_status_text():
    statuses = []
    provider = TuiDisplayProvider(cli_output="scroll", set_status=statuses.append)
    provider.update(_frame())
    assert len(statuses) == 1
    text = statuses[0]
    assert "Connected IP: 192.168.0.42" in text
    assert "120 orientation" in text
    assert provider.last_lines[0].startswith("Connected IP")
