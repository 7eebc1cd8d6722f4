"""Command dispatcher coordinating protocol, pattern engine and display."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from slm_app.core.config import AppConfig
from slm_app.core.logging import shorten
from slm_app.core.models import CorrectionPatternDeltas, DeviceState, PatternSelector
from slm_app.core.system import RebootRunner
from slm_app.patterns.cache import ArrayCache, decode_phase_image, encode_phase_image, image_format_for
from slm_app.patterns.catalog import build_catalog
from slm_app.patterns.engine import PatternEngine
from slm_app.patterns.files import custom_pattern_path, non_factory_path, resolve_flatness_file
from slm_app.protocol.codec import decode_raster, split_data_url
from slm_app.protocol.messages import (
    INBOUND_COMMANDS,
    AimAvailablePatterns,
    AimCorrectionDeltasAck,
    AimDeleteImage,
    AimDisconnect,
    AimGet,
    AimGetAllPatterns,
    AimPreStack,
    AimReboot,
    AimResponse,
    AimSet,
    AimSetCorrectionPatternDeltas,
    AimSetFresnel,
    AimSetPattern,
    AimState,
    AimUploadImage,
    Command,
    InitDone,
    LaserGet,
    LaserSet,
    Message,
    MessageType,
    ProtocolError,
    device_message,
    encode_message,
    parse_message,
    pretty,
)
from slm_app.storage.base import FileStoreBase
from slm_app.transport.base import TransportBase

SUBTOPICS = (
    "embedded/aim",
    "gui/aim",
    "calibration/aim",
    "embedded/lasers",
)
# Illumination source reported alongside the lasers; never drives the wavelength.
RESERVED_LASER = "led"
PRESTACK_REPLY = "PreStack done"


@dataclass(slots=True)
class DeviceContext:
    """
    Mutable device state and raster cache. Owned by one dispatcher loop and
    passed explicitly to every handler.
    """
    state: DeviceState
    cache: ArrayCache

    @classmethod
    def from_defaults(cls, config: AppConfig, store: FileStoreBase) -> "DeviceContext":
        defaults = config.defaults
        return cls(
            state=DeviceState(
                wavelength=defaults.wavelength,
                fresnel=defaults.fresnel,
                pattern=defaults.pattern,
            ),
            cache=ArrayCache(store),
        )


class CommandDispatcher:
    """
    Interprets inbound aim/laser/embedded messages, recomputes the SLM pattern
    and reports back on ``<root>/aim``.
    """

    def __init__(
        self,
        config: AppConfig,
        transport: TransportBase,
        display,
        store: FileStoreBase,
        engine: Optional[PatternEngine] = None,
        reboot_runner: Optional[RebootRunner] = None,
    ) -> None:
        self.config = config
        self.transport = transport
        self.display = display
        self.store = store
        self.engine = engine or PatternEngine(config, store)
        self.reboot_runner = reboot_runner or RebootRunner(config.reboot_command)
        self.log = logging.getLogger("slm_app")
        self.running = True

        self._aim_handlers: Dict[type, Callable[[DeviceContext, Command], None]] = {
            AimGet: self._on_get,
            AimGetAllPatterns: self._on_get_all_patterns,
            AimSet: self._on_set,
            AimPreStack: self._on_prestack,
            AimSetPattern: self._on_set_pattern,
            AimSetFresnel: self._on_set_fresnel,
            AimUploadImage: self._on_upload_image,
            AimDeleteImage: self._on_delete_image,
            AimSetCorrectionPatternDeltas: self._on_correction_deltas,
            AimReboot: self._on_reboot,
            # Our own outbound messages echoed back by peers.
            AimResponse: self._ignore,
            AimDisconnect: self._ignore,
            AimAvailablePatterns: self._ignore,
            AimState: self._ignore,
        }
        unhandled = {c for c in INBOUND_COMMANDS if c.DEVICE == "aim"} - set(self._aim_handlers)
        if unhandled:
            raise TypeError(f"aim commands without a handler: {sorted(c.__name__ for c in unhandled)}")

    # ---- outbound ----

    def send(self, command: Command) -> None:
        message = device_message(command)
        topic = self.config.aim_topic
        self.log.info("Sent message: Topic: %s, Contents:\n%s", topic, pretty(message))
        self.transport.publish(topic, encode_message(message))

    def send_get_lasers(self) -> None:
        self.send(LaserGet())

    def send_available_patterns(self) -> None:
        catalog = build_catalog(self.store, self.config.dir_path.base_patterns)
        self.send(AimAvailablePatterns(patterns=catalog.to_payload()))

    def send_current_state(self, ctx: DeviceContext) -> None:
        state = ctx.state
        self.send(AimState(wavelength=state.wavelength, fresnel=state.fresnel, pattern=state.pattern))

    def send_prestack_done(self) -> None:
        self.send(AimResponse(reply=PRESTACK_REPLY))

    def send_correction_ack(self, wavelength: int) -> None:
        self.send(AimCorrectionDeltasAck(wavelength=wavelength, success=True))

    def send_reports(self, ctx: DeviceContext) -> None:
        self.send_get_lasers()
        self.send_available_patterns()
        self.send_current_state(ctx)

    # ---- state ----

    def update_state(
        self,
        ctx: DeviceContext,
        pattern: Optional[PatternSelector] = None,
        fresnel: Optional[int] = None,
        wavelength: Optional[int] = None,
    ) -> None:
        """
        Recompute and present the pattern for the updated state. The state is
        only committed once the new frame is on the display.
        """
        current = ctx.state
        candidate = DeviceState(
            wavelength=current.wavelength if wavelength is None else wavelength,
            fresnel=current.fresnel if fresnel is None else fresnel,
            pattern=current.pattern if pattern is None else pattern,
        )
        frame = self.engine.compute(candidate, ctx.cache)
        self.display.show_gray(frame)
        ctx.state = candidate

    # ---- inbound ----

    def on_connect(self, ctx: DeviceContext) -> None:
        self.log.info("Subscribing to topics")
        for subtopic in SUBTOPICS:
            topic = self.config.subtopic(subtopic)
            self.transport.subscribe(topic)
            self.log.info("Subscribed to %s", topic)
        self.send_reports(ctx)

    def process_message(self, ctx: DeviceContext, topic: str, payload: bytes) -> None:
        message = parse_message(payload)
        self.log.info("Message received: Topic: %s, Contents: %s", topic, message)
        self.handle(ctx, message)

    def handle(self, ctx: DeviceContext, message: Message) -> None:
        data = message.data
        if message.type is MessageType.STATUS and isinstance(data, InitDone):
            self.send_reports(ctx)
            return
        if message.type is MessageType.DEVICE and isinstance(data, LaserSet):
            self._on_lasers(ctx, data)
            return
        if message.type is not MessageType.DEVICE or data.DEVICE != "aim":
            raise ProtocolError(f"Unexpected message: {message}")
        self._aim_handlers[type(data)](ctx, data)

    def _on_lasers(self, ctx: DeviceContext, cmd: LaserSet) -> None:
        self.log.info("Received laser wavelengths and intensities.")
        self.log.info("Selecting wavelength with highest intensity.")
        enabled = [l for l in cmd.lasers if l.state != 0 and l.name != RESERVED_LASER]
        if not enabled:
            self.log.info("No lasers enabled; skipping")
            return
        # max() keeps the first of equal intensities.
        strongest = max(enabled, key=lambda l: l.intensity)
        self.update_state(ctx, wavelength=strongest.wavelength)
        self.send_current_state(ctx)

    def _ignore(self, ctx: DeviceContext, cmd: Command) -> None:
        self.log.debug("Ignoring aim command %s", cmd.COMMAND)

    def _on_get(self, ctx: DeviceContext, cmd: AimGet) -> None:
        self.send_current_state(ctx)

    def _on_get_all_patterns(self, ctx: DeviceContext, cmd: AimGetAllPatterns) -> None:
        self.send_available_patterns()

    def _on_set(self, ctx: DeviceContext, cmd: AimSet) -> None:
        self.update_state(ctx, pattern=cmd.pattern, fresnel=cmd.fresnel)
        self.send_current_state(ctx)

    def _on_prestack(self, ctx: DeviceContext, cmd: AimPreStack) -> None:
        self.update_state(ctx, pattern=cmd.pattern, fresnel=cmd.fresnel)
        self.send_current_state(ctx)
        self.send_prestack_done()

    def _on_set_pattern(self, ctx: DeviceContext, cmd: AimSetPattern) -> None:
        self.update_state(ctx, pattern=cmd.pattern)
        self.send_current_state(ctx)

    def _on_set_fresnel(self, ctx: DeviceContext, cmd: AimSetFresnel) -> None:
        self.update_state(ctx, fresnel=cmd.value)
        self.send_current_state(ctx)

    def _on_upload_image(self, ctx: DeviceContext, cmd: AimUploadImage) -> None:
        extension, body = split_data_url(cmd.imagedata)
        path = custom_pattern_path(self.config, cmd.name).with_suffix(f".{extension}")
        self.log.info("Saving image to %s", path)
        self.store.write_bytes(path, body)
        ctx.cache.discard(path)
        self.send_available_patterns()
        self.send_current_state(ctx)

    def _on_delete_image(self, ctx: DeviceContext, cmd: AimDeleteImage) -> None:
        path = custom_pattern_path(self.config, cmd.name)
        self.log.info("Deleting image %s", path)
        self.store.delete(path)
        ctx.cache.discard(path)
        self.send_available_patterns()
        self.send_current_state(ctx)

    def _on_correction_deltas(self, ctx: DeviceContext, cmd: AimSetCorrectionPatternDeltas) -> None:
        self.add_correction_pattern_deltas(ctx, cmd.deltas)
        self.send_correction_ack(cmd.deltas.wavelength)

    def _on_reboot(self, ctx: DeviceContext, cmd: AimReboot) -> None:
        self.reboot_runner.reboot()
        self.running = False

    def add_correction_pattern_deltas(self, ctx: DeviceContext, deltas: CorrectionPatternDeltas) -> None:
        """
        Merge a delta raster into the wavelength's flatness correction and store
        the result under the non-factory name.
        """
        source = resolve_flatness_file(deltas.wavelength, self.config, self.store)
        current = ctx.cache.get_or_load(source)
        delta = decode_raster(deltas.imagedata, deltas.shape)
        if delta.shape != current.shape:
            raise ValueError(
                f"correction delta shape {delta.shape} does not match {source} shape {current.shape}"
            )
        merged = current + delta

        target = non_factory_path(source)
        data = encode_phase_image(merged, image_format_for(target))
        self.store.write_bytes(target, data)
        # Cache what a fresh read of the written file would give.
        ctx.cache.put(target, decode_phase_image(data))
        self.log.info("Updated flatness correction %s from %s", target, source.name)

    # ---- loop ----

    def run(self, ctx: DeviceContext) -> None:
        """Subscribe, announce, then poll the transport and the display until quit."""
        self.log.info("Initializing message loop")
        self.on_connect(ctx)

        self.log.info("Starting message processing")
        while self.running:
            inbound = self.transport.poll()
            if inbound is not None:
                try:
                    self.process_message(ctx, inbound.topic, inbound.payload)
                except Exception as exc:
                    self.log.error(
                        "Error %s while processing message on %s: %s; continuing",
                        exc,
                        inbound.topic,
                        shorten(inbound.payload),
                    )
                continue

            if self.display.poll_quit():
                self.log.info("Quit requested from the display window")
                break

            if self.config.idle_sleep_s:
                time.sleep(self.config.idle_sleep_s)
