"""ToyCV-style Tk sliders standing in for a phone gyroscope."""

from __future__ import annotations

import tkinter as tk

from ..control.orientation_source import OrientationSource
from ..math3d.device_frame import receiver_to_device
from ..math3d.quaternion import euler_zxy_deg_to_q
from ..net.wire import MessageKind


def receiver_euler_to_device_q(pitch_deg: float, twist_deg: float, yaw_deg: float):
    """Device attitude whose receiver-space ZXY Euler angles are the given ones.

    Inverts ``device_to_receiver`` so the sliders read in aim terms.
    """
    return receiver_to_device(euler_zxy_deg_to_q(pitch_deg, twist_deg, yaw_deg))


class ToyCvTkOrientationSource(OrientationSource):
    """Debug source: sliders in receiver aim axes plus phone-UI command buttons."""

    name = "toycv"

    def __init__(self, title: str, tick_ms: int = 16):
        super().__init__()
        try:
            self.root = tk.Tk()
        except tk.TclError as exc:
            raise RuntimeError(f"orientation-source=toycv needs a display: {exc}") from exc
        self.root.title(title)
        self.tick_ms = int(tick_ms)

        self._var_pitch = tk.DoubleVar(value=0.0)
        self._var_yaw = tk.DoubleVar(value=0.0)
        self._var_twist = tk.DoubleVar(value=0.0)

        self._build_ui()

        self._on_tick = None
        self._closed = False
        self.root.protocol("WM_DELETE_WINDOW", self._handle_close)
        self._sample()

    def _build_ui(self) -> None:
        def add_slider(label: str, var: tk.DoubleVar, lo: int, hi: int) -> None:
            tk.Label(self.root, text=label).pack(anchor="w", padx=10, pady=2)
            tk.Scale(
                self.root,
                from_=lo,
                to=hi,
                orient="horizontal",
                resolution=0.5,
                length=520,
                variable=var,
            ).pack(padx=10, pady=2)

        add_slider("Pitch / nose up-down (deg) [-89..89]", self._var_pitch, -89, 89)
        add_slider("Yaw / nose left-right (deg) [-180..180]", self._var_yaw, -180, 180)
        add_slider("Twist (deg) [-180..180]", self._var_twist, -180, 180)

        buttons = tk.Frame(self.root)
        buttons.pack(padx=10, pady=6)
        for text, kind in (
            ("Calibrate", MessageKind.CALIBRATE),
            ("Shoot", MessageKind.SHOOT),
            ("Restart", MessageKind.RESTART),
        ):
            tk.Button(buttons, text=text, width=12, command=lambda k=kind: self._emit_command(k)).pack(
                side="left", padx=4
            )

        self._stats = tk.Label(self.root, text="", justify="left", font=("Consolas", 10))
        self._stats.pack(padx=10, pady=8)

    def _handle_close(self) -> None:
        self._closed = True
        self.root.destroy()

    def _sample(self) -> None:
        # Tk variables are only touched on the Tk thread; the sender thread
        # reads the published snapshot.
        self._publish(
            receiver_euler_to_device_q(
                float(self._var_pitch.get()),
                float(self._var_twist.get()),
                float(self._var_yaw.get()),
            )
        )

    def set_status(self, text: str) -> None:
        if not self._closed:
            self._stats.config(text=text)

    def run(self, on_tick):
        self._on_tick = on_tick
        self.root.after(self.tick_ms, self._tick)
        self.root.mainloop()

    def _tick(self) -> None:
        if self._closed:
            return
        self._sample()
        if self._on_tick is not None:
            self._on_tick()
        self.root.after(self.tick_ms, self._tick)

    def close(self) -> None:
        if not self._closed:
            self._handle_close()
