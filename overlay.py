"""Floating status panel: session state, live transcript and hints."""

from __future__ import annotations

from models import DEFAULT_LANGUAGE, EngineKind, SessionStatus

try:
    from PySide6.QtCore import Qt, QTimer
    from PySide6.QtWidgets import QApplication, QHBoxLayout, QLabel, QVBoxLayout, QWidget
except Exception:  # pragma: no cover
    Qt = None  # type: ignore
    QTimer = None  # type: ignore
    QApplication = None  # type: ignore
    QHBoxLayout = object  # type: ignore
    QLabel = object  # type: ignore
    QVBoxLayout = object  # type: ignore
    QWidget = object  # type: ignore

HINT_TEXT = 'Try: "dashboard" · "settings" · "results"'

PANEL_STYLE = "background: rgba(0,0,0,190); border-radius: 12px;"
TEXT_STYLE = "color: white; font-size: 18px; padding: 4px 16px;"
ERROR_STYLE = "color: #FF6B6B; font-size: 18px; padding: 4px 16px;"
HINT_STYLE = "color: #AAAAAA; font-size: 12px; padding: 4px 16px;"
BADGE_STYLE = (
    "color: white; font-size: 11px; padding: 2px 6px;"
    "background: #3B82F6; border-radius: 6px;"
)


def status_title(status: SessionStatus, engine: EngineKind) -> str:
    if status == SessionStatus.RECORDING:
        if engine == EngineKind.REMOTE_PUSH_TO_TALK:
            return "Recording (Cloud)"
        return "Listening..."
    if status == SessionStatus.PROCESSING:
        return "Processing..."
    if status == SessionStatus.SUCCESS:
        return "Done"
    if status == SessionStatus.ERROR:
        return "Error"
    return "Voice Navigation"


def language_badge(language_code: str) -> str:
    if not language_code or language_code == DEFAULT_LANGUAGE:
        return ""
    return language_code.split("-")[0].upper()


class OverlayWindow(QWidget):
    def __init__(self) -> None:
        if Qt is None:
            raise RuntimeError("PySide6 is not installed")
        super().__init__()
        self.setWindowFlags(Qt.WindowStaysOnTopHint | Qt.FramelessWindowHint | Qt.Tool)
        self.setAttribute(Qt.WA_TranslucentBackground, True)
        self.setFixedWidth(600)
        self.setStyleSheet(PANEL_STYLE)

        self._title = QLabel(status_title(SessionStatus.IDLE, EngineKind.ON_DEVICE_CONTINUOUS))
        self._title.setStyleSheet("color: white; font-size: 13px; font-weight: bold; padding: 8px 16px 0 16px;")
        self._badge = QLabel("")
        self._badge.setStyleSheet(BADGE_STYLE)
        self._badge.hide()

        header = QHBoxLayout()
        header.setContentsMargins(0, 0, 16, 0)
        header.addWidget(self._title)
        header.addStretch(1)
        header.addWidget(self._badge)

        self._text = QLabel("")
        self._text.setWordWrap(True)
        self._text.setStyleSheet(TEXT_STYLE)
        self._hint = QLabel(HINT_TEXT)
        self._hint.setStyleSheet(HINT_STYLE)

        layout = QVBoxLayout()
        layout.setContentsMargins(0, 0, 0, 8)
        layout.addLayout(header)
        layout.addWidget(self._text)
        layout.addWidget(self._hint)
        self.setLayout(layout)

        self._hide_timer: QTimer | None = None

    def _center_top(self) -> None:
        if QApplication is None:
            return
        screen = QApplication.primaryScreen()
        if screen is None:
            return
        geom = screen.availableGeometry()
        self.adjustSize()
        x = geom.x() + (geom.width() - self.width()) // 2
        y = geom.y() + 40
        self.move(x, y)

    def set_status(self, status: SessionStatus, engine: EngineKind) -> None:
        self._title.setText(status_title(status, engine))
        self._hint.setVisible(status == SessionStatus.RECORDING)
        if status != SessionStatus.ERROR:
            self._text.setStyleSheet(TEXT_STYLE)

    def set_language(self, language_code: str) -> None:
        badge = language_badge(language_code)
        self._badge.setText(badge)
        self._badge.setVisible(bool(badge))

    def set_text(self, text: str) -> None:
        """Show the panel with the given transcript or message."""
        self._cancel_hide_timer()
        self._text.setText(text)
        self._center_top()
        self.show()

    def hide_with_delay(self, delay_ms: int = 400) -> None:
        self._cancel_hide_timer()
        if QTimer is not None:
            self._hide_timer = QTimer()
            self._hide_timer.setSingleShot(True)
            self._hide_timer.timeout.connect(self.hide)
            self._hide_timer.start(delay_ms)

    def show_error(self, text: str) -> None:
        """Show an error line; the panel stays until the session returns to idle."""
        self._text.setStyleSheet(ERROR_STYLE)
        self.set_text(f"⚠️ {text}")

    def _cancel_hide_timer(self) -> None:
        if self._hide_timer is not None:
            self._hide_timer.stop()
            self._hide_timer = None
