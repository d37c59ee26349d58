"""Application entrypoint."""

from __future__ import annotations

import logging
import sys
import threading

from auto_paste import ClipboardPasteService
from command_resolver import CommandResolver
from config import JsonConfigStore
from dispatcher import ActionDispatcher, BrowserNavigator
from event_bus import VOICE_COMMAND, EventBus
from feedback_guard import FeedbackLoopGuard
from hotkey import GlobalHotkeyAdapter
from intent_classifier import DashscopeIntentClassifier
from models import EngineKind, SessionMode, SessionStatus
from overlay import OverlayWindow
from playback import SoundDevicePlayer
from recognizer import VoskRecognizerAdapter
from recorder import SoundDeviceRecorder
from services import VoiceApiClient
from session_controller import SessionController
from speech_output import SpeechOutputService
from speech_source import SpeechSource
from transcriber import DashscopeTranscriber

try:
    from PySide6.QtCore import QObject, QSize, Signal
    from PySide6.QtGui import QAction, QBrush, QColor, QIcon, QPainter, QPixmap
    from PySide6.QtWidgets import QApplication, QInputDialog, QMenu, QMessageBox, QSystemTrayIcon
except Exception as exc:  # pragma: no cover
    raise SystemExit(f"PySide6 is required to run the desktop app: {exc}")

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _create_icon(color: str = "#888888", size: int = 22) -> QIcon:
    """Generate a simple circular tray icon with the given color."""
    pixmap = QPixmap(QSize(size, size))
    pixmap.fill(QColor(0, 0, 0, 0))
    painter = QPainter(pixmap)
    painter.setRenderHint(QPainter.Antialiasing, True)
    painter.setBrush(QBrush(QColor(color)))
    painter.setPen(QColor(color))
    painter.drawEllipse(2, 2, size - 4, size - 4)
    painter.end()
    return QIcon(pixmap)


ICON_COLORS = {
    SessionStatus.IDLE.value: "#888888",
    SessionStatus.RECORDING.value: "#FF4444",
    SessionStatus.PROCESSING.value: "#3B82F6",
    SessionStatus.SUCCESS.value: "#22C55E",
    SessionStatus.ERROR.value: "#FF8800",
}


class UIBridge(QObject):
    partial_signal = Signal(str)
    message_signal = Signal(str)
    error_signal = Signal(str)
    state_signal = Signal(str, str)  # from_state, to_state


class App:
    def __init__(self) -> None:
        self.app = QApplication(sys.argv)
        self.app.setQuitOnLastWindowClosed(False)
        self.config_store = JsonConfigStore()
        logging.basicConfig(level=self.config_store.get_log_level(), format=LOG_FORMAT)

        self.overlay = OverlayWindow()
        self.ui = UIBridge()
        self.ui.partial_signal.connect(self._on_partial_ui)
        self.ui.message_signal.connect(self._on_message_ui)
        self.ui.error_signal.connect(self._on_error_ui)
        self.ui.state_signal.connect(self._on_state_change_ui)

        self.bus = EventBus()
        self.bus.subscribe(VOICE_COMMAND, self._on_voice_command)
        self.api = VoiceApiClient(self.config_store.get_base_url())
        recognizer = VoskRecognizerAdapter(model_path=self.config_store.get_vosk_model_path())
        if not recognizer.available:
            logger.warning("on-device engine unavailable, capture will use the cloud engine")
        self.player = SoundDevicePlayer()
        self.source = SpeechSource(
            recorder=SoundDeviceRecorder(),
            recognizer=recognizer,
            transcriber=self._build_transcriber(),
            engine=EngineKind(self.config_store.get_engine()),
            language=self.config_store.get_language(),
        )
        self.speech_output = SpeechOutputService(self.api, self.player, self.bus)
        self.controller = SessionController(
            source=self.source,
            resolver=CommandResolver(self._build_classifier()),
            dispatcher=ActionDispatcher(self.bus, BrowserNavigator(self.config_store.get_base_url())),
            paste_service=ClipboardPasteService(),
            speech_output=self.speech_output,
            speak_feedback=self.config_store.get_speak_feedback(),
            on_state_change=self._on_state_change,
            on_partial=self._on_partial,
            on_error=self._on_error,
            on_message=self._on_message,
        )
        self.guard = FeedbackLoopGuard(self.bus, self.source, self.controller.is_recording)
        self.guard.install()

        self.hotkey = GlobalHotkeyAdapter()
        self.hotkey.bind(self.config_store.get_hotkey(), self._on_command_hotkey)
        self.hotkey.bind(self.config_store.get_dictation_hotkey(), self._on_dictation_hotkey)

        self.tray = QSystemTrayIcon()
        self.tray.setIcon(_create_icon(ICON_COLORS[SessionStatus.IDLE.value]))
        self.tray.setToolTip("Voice Navigation — Ready")
        self._setup_menu()
        self.tray.show()

    def _build_transcriber(self):
        if self.config_store.get_transcription_backend() == "dashscope":
            return DashscopeTranscriber(api_key=self.config_store.get_api_key())
        return self.api

    def _build_classifier(self):
        if self.config_store.get_intent_backend() == "dashscope":
            return DashscopeIntentClassifier(api_key=self.config_store.get_api_key())
        return self.api

    def _setup_menu(self) -> None:
        menu = QMenu()

        api_action = QAction("Set API Key", menu)
        api_action.triggered.connect(self._set_api_key)
        menu.addAction(api_action)

        url_action = QAction("Set Web App URL", menu)
        url_action.triggered.connect(self._set_base_url)
        menu.addAction(url_action)

        hotkey_action = QAction("Set Hotkey", menu)
        hotkey_action.triggered.connect(self._set_hotkey)
        menu.addAction(hotkey_action)

        language_action = QAction("Set Language", menu)
        language_action.triggered.connect(self._set_language)
        menu.addAction(language_action)

        reset_action = QAction("Use On-Device Engine Again", menu)
        reset_action.triggered.connect(self.source.reset_engine)
        menu.addAction(reset_action)

        menu.addSeparator()
        quit_action = QAction("Quit", menu)
        quit_action.triggered.connect(self.quit)
        menu.addAction(quit_action)

        self.tray.setContextMenu(menu)

    def _set_api_key(self) -> None:
        value, ok = QInputDialog.getText(None, "API Key", "DashScope API Key")
        if not ok:
            return
        self.config_store.set_api_key(value)
        QMessageBox.information(None, "Saved", "API Key saved. Restart app to apply.")

    def _set_base_url(self) -> None:
        value, ok = QInputDialog.getText(
            None, "Web App URL", "Base URL of the web app", text=self.config_store.get_base_url()
        )
        if not ok or not value:
            return
        self.config_store.set_base_url(value)
        QMessageBox.information(None, "Saved", "URL saved. Restart app to apply.")

    def _set_hotkey(self) -> None:
        value, ok = QInputDialog.getText(None, "Hotkey", "Use pynput key format, e.g. Key.f8")
        if not ok or not value:
            return
        self.config_store.set_hotkey(value)
        QMessageBox.information(None, "Saved", "Hotkey saved. Restart app to apply.")

    def _set_language(self) -> None:
        value, ok = QInputDialog.getText(
            None, "Language", "Locale, e.g. en-IN or hi-IN", text=self.config_store.get_language()
        )
        if not ok or not value:
            return
        self.config_store.set_language(value)
        QMessageBox.information(None, "Saved", "Language saved. Restart app to apply.")

    # ------------------------------------------------------------------
    # Callbacks (called from worker threads → emit signals for UI thread)
    # ------------------------------------------------------------------

    def _on_state_change(self, from_state: SessionStatus, to_state: SessionStatus) -> None:
        self.ui.state_signal.emit(from_state.value, to_state.value)

    def _on_partial(self, text: str) -> None:
        self.ui.partial_signal.emit(text)

    def _on_message(self, message: str) -> None:
        self.ui.message_signal.emit(message)

    def _on_error(self, code: str, message: str) -> None:
        logger.info("%s: %s", code, message)
        self.ui.error_signal.emit(message)

    def _on_voice_command(self, event_name: str) -> None:
        self.ui.message_signal.emit(f"Action: {event_name}")

    # ------------------------------------------------------------------
    # UI thread handlers (safe for Qt)
    # ------------------------------------------------------------------

    def _on_partial_ui(self, text: str) -> None:
        self.overlay.set_text(text)

    def _on_message_ui(self, text: str) -> None:
        self.overlay.set_text(text)

    def _on_error_ui(self, msg: str) -> None:
        self.overlay.show_error(msg)

    def _on_state_change_ui(self, from_state: str, to_state: str) -> None:
        session = self.controller.session
        status = SessionStatus(to_state)
        self.tray.setIcon(_create_icon(ICON_COLORS[to_state]))
        self.tray.setToolTip(f"Voice Navigation — {to_state.title()}")
        self.overlay.set_status(status, session.engine)
        self.overlay.set_language(session.detected_language)
        if status == SessionStatus.IDLE:
            self.overlay.hide_with_delay(400)

    # ------------------------------------------------------------------
    # Hotkey handlers
    # ------------------------------------------------------------------

    def _on_command_hotkey(self) -> None:
        self._toggle(SessionMode.COMMAND)

    def _on_dictation_hotkey(self) -> None:
        self._toggle(SessionMode.DICTATION)

    def _toggle(self, mode: SessionMode) -> None:
        # stop_session waits on remote calls, keep it off the listener thread
        threading.Thread(
            target=self.controller.toggle_session,
            args=(mode,),
            daemon=True,
        ).start()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        try:
            self.hotkey.start()
        except Exception as exc:
            self.overlay.show_error(f"Hotkey disabled: {exc}")
        return self.app.exec()

    def quit(self) -> None:
        self.hotkey.stop()
        self.guard.uninstall()
        self.controller.close()
        self.player.stop()
        self.api.close()
        self.app.quit()


def main() -> int:
    app = App()
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
