#!/usr/bin/env python3
"""
Gesture Trainer - Main Entry Point

Opens the camera, detects hands with MediaPipe, and lets you teach gestures
from the keyboard. Once a model is trained, the stable gesture label is
shown in the preview and, if a server is given, broadcast over WebSocket.

Keys (preview window focused):
    n         Add a new class (becomes active)
    1-9       Select class by position
    space     Capture a sample for the active class
    t         Train the neural network model
    k         Train the nearest-neighbor model
    x         Delete the active class
    r         Reset the dataset
    q / ESC   Quit

Usage:
    python -m gesture_trainer.main --camera 0
    python -m gesture_trainer.main --server ws://127.0.0.1:8787/ws?room=demo --token SECRET
"""

import argparse
import asyncio
import logging
import signal
import sys
import time
from typing import Optional

import cv2
import mediapipe as mp

from .config import TrainerConfig
from .errors import GestureTrainerError
from .landmarks import detection_from_mediapipe
from .model import EXEMPLAR, TRAINED
from .session import GestureSession, TickResult
from .training import ProgressEvent
from .ws_client import GestureWebSocketClient

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# MediaPipe setup
mp_hands = mp.solutions.hands
mp_draw = mp.solutions.drawing_utils


class GestureTrainerApp:
    """
    Main application that integrates all components:
    - Camera capture
    - MediaPipe hand detection
    - Gesture session (capture, training, live prediction)
    - WebSocket broadcast
    """

    def __init__(
        self,
        config: TrainerConfig,
        camera_index: int = 0,
        rate: float = 30.0,
    ):
        """
        Initialize the application.

        Args:
            config: Pipeline configuration
            camera_index: Camera device index
            rate: Frame loop rate (Hz)
        """
        self.config = config
        self.camera_index = camera_index
        self.rate = rate

        self.ws_client: Optional[GestureWebSocketClient] = None
        self.session = GestureSession(config, sink=self._broadcast)

        self.cap: Optional[cv2.VideoCapture] = None
        self.hands = None

        self._running = False
        self._last_ts_ms = 0.0
        self._train_task: Optional[asyncio.Task] = None
        self._train_status = ""
        self._last_tick: Optional[TickResult] = None

        self.font = cv2.FONT_HERSHEY_SIMPLEX

    async def start(self) -> None:
        """Start the application."""
        logger.info("Starting Gesture Trainer...")

        self.cap = cv2.VideoCapture(self.camera_index)
        if not self.cap.isOpened():
            raise RuntimeError(f"Failed to open camera index {self.camera_index}")

        self.hands = mp_hands.Hands(
            static_image_mode=False,
            max_num_hands=2,
            model_complexity=1,
            min_detection_confidence=0.5,
            min_tracking_confidence=0.5,
        )

        if self.config.ws_url:
            self.ws_client = GestureWebSocketClient(
                server_url=self.config.ws_url,
                token=self.config.token,
            )
            await self.ws_client.start()

        self._running = True
        logger.info("Gesture Trainer started")

    async def stop(self) -> None:
        """Stop the application and clean up resources."""
        logger.info("Stopping Gesture Trainer...")
        self._running = False

        if self.ws_client:
            await self.ws_client.stop()

        if self.cap:
            self.cap.release()
            self.cap = None

        if self.hands:
            self.hands.close()
            self.hands = None

        cv2.destroyAllWindows()
        logger.info("Gesture Trainer stopped")

    def _broadcast(self, message) -> None:
        logger.debug(f"Broadcast: {message.label} ({message.confidence:.2f}) seq={message.seq}")
        if self.ws_client and self.ws_client.connected:
            self.ws_client.send(message)

    async def run(self) -> None:
        """Main frame loop."""
        target_dt = 1.0 / self.rate

        while self._running:
            loop_start = time.time()

            try:
                self._process_frame()
            except GestureTrainerError as e:
                logger.warning(f"{e}")

            self._handle_key(cv2.waitKey(1) & 0xFF)

            # Yield to training / network tasks
            elapsed = time.time() - loop_start
            await asyncio.sleep(max(0.0, target_dt - elapsed))

    def _process_frame(self) -> None:
        ok, frame = self.cap.read()
        if not ok or frame is None:
            return

        if self.config.mirror:
            frame = cv2.flip(frame, 1)
        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)

        # MediaPipe needs strictly increasing timestamps
        now_ms = max(time.monotonic() * 1000.0, self._last_ts_ms + 1.0)
        self._last_ts_ms = now_ms

        results = self.hands.process(rgb)
        # Flipping the image makes MediaPipe's handedness match the user's view
        detection = detection_from_mediapipe(results, now_ms, mirror=not self.config.mirror)

        self._last_tick = self.session.tick(detection, now_ms)

        if results.multi_hand_landmarks:
            for lm in results.multi_hand_landmarks:
                mp_draw.draw_landmarks(frame, lm, mp_hands.HAND_CONNECTIONS)
        self._draw_status(frame)
        cv2.imshow("Gesture Trainer", frame)

    def _handle_key(self, key: int) -> None:
        if key == 255:
            return
        dataset = self.session.dataset

        if key in (27, ord('q')):
            logger.info("Quit requested")
            self._running = False
        elif key == ord('n'):
            dataset.add_class()
        elif ord('1') <= key <= ord('9'):
            idx = key - ord('1')
            if idx < len(dataset.classes):
                dataset.set_active_class(dataset.classes[idx].id)
                logger.info(f"Active class: {dataset.classes[idx].name}")
        elif key == ord(' '):
            sample = self.session.capture()
            if sample is None:
                logger.info("No hand visible, nothing captured")
            else:
                counts = dataset.count_samples_by_class()
                logger.info(f"Captured sample ({counts.get(sample.class_id, 0)} for this class)")
        elif key == ord('x'):
            if dataset.active_class_id is not None:
                dataset.delete_class(dataset.active_class_id)
        elif key == ord('r'):
            dataset.reset()
            logger.info("Dataset reset")
        elif key == ord('t'):
            self._start_training(TRAINED)
        elif key == ord('k'):
            self._start_training(EXEMPLAR)

    def _start_training(self, kind: str) -> None:
        if self._train_task and not self._train_task.done():
            logger.info("Training already in progress")
            return
        self._train_task = asyncio.create_task(self._train(kind))

    async def _train(self, kind: str) -> None:
        def on_progress(event: ProgressEvent) -> None:
            val = (
                f" val_acc={event.validation_accuracy:.2f}"
                if event.validation_accuracy is not None else ""
            )
            self._train_status = f"{kind} step {event.step}: acc={event.train_accuracy:.2f}{val}"
            logger.debug(self._train_status)

        try:
            result = await self.session.train(kind, on_progress=on_progress)
        except GestureTrainerError as e:
            self._train_status = f"Training failed: {e}"
            return

        if kind == TRAINED:
            meta = result.meta
            self._train_status = (
                f"Trained {meta.epochs_run}/{meta.epochs} epochs"
                f"{' (early stop)' if meta.stopped_early else ''}"
            )
        else:
            self._train_status = f"Exemplar model ready (k={result.model.k})"
        logger.info(self._train_status)

    def _draw_status(self, frame) -> None:
        h = frame.shape[0]
        dataset = self.session.dataset
        active = dataset.active_class
        counts = dataset.count_samples_by_class()

        for i, cls in enumerate(dataset.classes[:9]):
            color = (0, 255, 0) if active and cls.id == active.id else (200, 200, 200)
            cv2.putText(
                frame,
                f"{i + 1}: {cls.name} ({counts.get(cls.id, 0)})",
                (20, 30 + i * 22),
                self.font, 0.55, color, 1,
            )

        tick = self._last_tick
        if tick is not None and self.session.has_model:
            state = tick.stability
            label = state.stable_label or "-"
            cv2.putText(
                frame,
                f"Stable: {label} ({state.stable_confidence:.2f})",
                (20, h - 50),
                self.font, 0.8, (0, 255, 255), 2,
            )

        if self._train_status:
            cv2.putText(frame, self._train_status, (20, h - 20), self.font, 0.5, (255, 200, 0), 1)


async def main_async(args: argparse.Namespace) -> None:
    """Async main entry point."""
    config = TrainerConfig.from_env()
    if args.server:
        config.ws_url = args.server
    if args.token:
        config.token = args.token
    if args.no_mirror:
        config.mirror = False
    if args.seed is not None:
        config.seed = args.seed
    if args.keepalive is not None:
        config.keepalive_ms = args.keepalive

    app = GestureTrainerApp(config, camera_index=args.camera, rate=args.rate)

    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Shutdown signal received")
        app._running = False

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, signal_handler)
        except NotImplementedError:
            pass

    try:
        await app.start()
        await app.run()
    finally:
        await app.stop()


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Teachable hand gesture trainer",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--camera",
        type=int,
        default=0,
        help="Camera device index",
    )
    parser.add_argument(
        "--server",
        type=str,
        default=None,
        help="WebSocket URL for broadcasting gestures (overrides GESTURE_WS_URL)",
    )
    parser.add_argument(
        "--token",
        type=str,
        default=None,
        help="Bearer token for the WebSocket server",
    )
    parser.add_argument(
        "--rate",
        type=float,
        default=30.0,
        help="Frame loop rate (Hz)",
    )
    parser.add_argument(
        "--keepalive",
        type=float,
        default=None,
        help="Resend an unchanged gesture every N ms",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed for training",
    )
    parser.add_argument(
        "--no-mirror",
        action="store_true",
        help="Do not mirror the preview",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args()

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        asyncio.run(main_async(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(0)
    except RuntimeError as e:
        logger.error(f"{e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
