"""Application entrypoint."""

from __future__ import annotations

import logging
import sys
import threading
from pathlib import Path

from config import IMAGE_MODELS, JsonConfigStore
from errors import (
    AUTH_FAILED,
    ERROR_MESSAGES,
    GENERATION_FAILED,
    GenerationError,
    SurfaceError,
    parse_error_message,
)
from generator import DashscopeImageGenerator
from history import HistoryManager
from merge import PromptBuffer
from models import GenerationRequest, ImageFound, SessionConfig
from recorder import SoundDeviceRecorder
from session_controller import VoiceSessionController
from surface import Surface
from transcriber import DashscopeLiveTranscriber
from workspace import DrawingWorkspace

try:
    from PySide6.QtCore import QObject, QPointF, Qt, Signal
    from PySide6.QtGui import QColor, QPainter, QPixmap
    from PySide6.QtWidgets import (
        QApplication,
        QColorDialog,
        QComboBox,
        QFileDialog,
        QHBoxLayout,
        QInputDialog,
        QLineEdit,
        QMessageBox,
        QPushButton,
        QVBoxLayout,
        QWidget,
    )
except Exception as exc:  # pragma: no cover
    raise SystemExit(f"PySide6 is required to run the desktop app: {exc}")

LOGGER = logging.getLogger(__name__)


class UIBridge(QObject):
    prompt_signal = Signal(str)
    listening_signal = Signal(bool)
    error_signal = Signal(str, str)  # code, message
    generated_signal = Signal(object)


class CanvasWidget(QWidget):
    def __init__(self, workspace: DrawingWorkspace) -> None:
        super().__init__()
        self._workspace = workspace
        self._pixmap = QPixmap()
        self.setMinimumSize(480, 270)
        self.setCursor(Qt.CrossCursor)
        self.refresh()

    def refresh(self) -> None:
        self._pixmap.loadFromData(self._workspace.surface.to_png(), "PNG")
        self.update()

    def _to_surface(self, pos: QPointF) -> tuple[float, float]:
        surface = self._workspace.surface
        return (
            pos.x() * surface.width / max(1, self.width()),
            pos.y() * surface.height / max(1, self.height()),
        )

    def paintEvent(self, event) -> None:  # noqa: ANN001, N802
        painter = QPainter(self)
        painter.drawPixmap(self.rect(), self._pixmap)
        painter.setPen(QColor("#000000"))
        painter.drawRect(self.rect().adjusted(0, 0, -1, -1))
        painter.end()

    def mousePressEvent(self, event) -> None:  # noqa: ANN001, N802
        if event.button() != Qt.LeftButton:
            return
        self._workspace.begin_stroke(self._to_surface(event.position()))

    def mouseMoveEvent(self, event) -> None:  # noqa: ANN001, N802
        if not self._workspace.surface.stroke_active:
            return
        self._workspace.extend_stroke(self._to_surface(event.position()))
        self.refresh()

    def mouseReleaseEvent(self, event) -> None:  # noqa: ANN001, N802
        self._workspace.end_stroke()
        self.refresh()


class App:
    def __init__(self) -> None:
        self.app = QApplication(sys.argv)
        self.config_store = JsonConfigStore()
        self.ui = UIBridge()
        self.ui.prompt_signal.connect(self._on_prompt_ui)
        self.ui.listening_signal.connect(self._on_listening_ui)
        self.ui.error_signal.connect(self._on_error_ui)
        self.ui.generated_signal.connect(self._on_generated_ui)

        api_key = self.config_store.get_api_key()
        self.prompt = PromptBuffer(on_change=self.ui.prompt_signal.emit)
        self.workspace = DrawingWorkspace(
            surface=Surface(),
            history=HistoryManager(max_depth=self.config_store.get_history_depth()),
            generator=DashscopeImageGenerator(api_key=api_key),
            prompt=self.prompt,
            model=self.config_store.get_image_model(),
            prompt_suffix=self.config_store.get_prompt_suffix(),
        )
        self.voice = VoiceSessionController(
            recorder=SoundDeviceRecorder(),
            session_factory=lambda: DashscopeLiveTranscriber(api_key=api_key),
            prompt=self.prompt,
            config=SessionConfig(
                model=self.config_store.get_transcription_model(),
                instruction=self.config_store.get_system_instruction(),
            ),
            on_listening_change=self.ui.listening_signal.emit,
            on_error=self.ui.error_signal.emit,
        )

        self.window = QWidget()
        self.window.setWindowTitle("Co-Drawing")
        self._build_window()

    def _build_window(self) -> None:
        self.canvas = CanvasWidget(self.workspace)

        self.model_box = QComboBox()
        self.model_box.addItems(list(IMAGE_MODELS))
        if self.workspace.model not in IMAGE_MODELS:
            self.model_box.addItem(self.workspace.model)
        self.model_box.setCurrentText(self.workspace.model)
        self.model_box.currentTextChanged.connect(self._set_model)

        toolbar = QHBoxLayout()
        toolbar.addWidget(self.model_box)
        for label, handler in (
            ("API Key", self._set_api_key),
            ("Undo", self._undo),
            ("Redo", self._redo),
            ("Import", self._import_image),
            ("Color", self._pick_color),
            ("Export", self._export),
            ("Clear", self._clear),
        ):
            button = QPushButton(label)
            button.clicked.connect(handler)
            toolbar.addWidget(button)
        toolbar.addStretch(1)

        self.prompt_edit = QLineEdit()
        self.prompt_edit.setPlaceholderText("Sketch something, then describe the change...")
        self.prompt_edit.textEdited.connect(self.prompt.set_text)
        self.prompt_edit.returnPressed.connect(self._submit)

        self.mic_button = QPushButton("Mic")
        self.mic_button.setCheckable(True)
        self.mic_button.clicked.connect(self._toggle_listening)

        self.submit_button = QPushButton("Send")
        self.submit_button.clicked.connect(self._submit)

        prompt_row = QHBoxLayout()
        prompt_row.addWidget(self.prompt_edit, 1)
        prompt_row.addWidget(self.mic_button)
        prompt_row.addWidget(self.submit_button)

        layout = QVBoxLayout()
        layout.addLayout(toolbar)
        layout.addWidget(self.canvas, 1)
        layout.addLayout(prompt_row)
        self.window.setLayout(layout)
        self.window.resize(1000, 680)

    # ------------------------------------------------------------------
    # Toolbar actions
    # ------------------------------------------------------------------

    def _set_model(self, model: str) -> None:
        self.workspace.model = model
        self.config_store.set_image_model(model)

    def _set_api_key(self) -> None:
        value, ok = QInputDialog.getText(self.window, "API Key", "DashScope API Key")
        if not ok:
            return
        self.config_store.set_api_key(value)
        # Hot-swap clients with new key
        self.workspace.replace_generator(DashscopeImageGenerator(api_key=value))
        self.voice.replace_session_factory(lambda: DashscopeLiveTranscriber(api_key=value))
        QMessageBox.information(self.window, "Saved", "API Key saved and applied.")

    def _undo(self) -> None:
        if self.workspace.undo():
            self.canvas.refresh()

    def _redo(self) -> None:
        if self.workspace.redo():
            self.canvas.refresh()

    def _clear(self) -> None:
        self.workspace.clear()
        self.canvas.refresh()

    def _import_image(self) -> None:
        path, _ = QFileDialog.getOpenFileName(self.window, "Import image", "", "Images (*.png *.jpg *.jpeg *.webp *.bmp)")
        if not path:
            return
        try:
            self.workspace.import_image(Path(path))
        except (OSError, SurfaceError) as exc:
            self._on_error_ui("", str(exc))
            return
        self.canvas.refresh()

    def _pick_color(self) -> None:
        r, g, b = self.workspace.pen_color
        color = QColorDialog.getColor(QColor(r, g, b), self.window)
        if color.isValid():
            self.workspace.pen_color = (color.red(), color.green(), color.blue())

    def _export(self) -> None:
        try:
            target = self.workspace.export(self.config_store.get_export_dir())
        except OSError as exc:
            self._on_error_ui("", str(exc))
            return
        QMessageBox.information(self.window, "Exported", f"Saved to {target}")

    def _toggle_listening(self) -> None:
        self.voice.toggle_listening()

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def _submit(self) -> None:
        if self.workspace.busy:
            return
        try:
            request = self.workspace.begin_request()
        except GenerationError:
            return
        self.submit_button.setEnabled(False)
        threading.Thread(target=self._generate_worker, args=(request,), daemon=True).start()

    def _generate_worker(self, request: GenerationRequest) -> None:
        try:
            result = self.workspace.generate(request)
        except GenerationError as exc:
            self.ui.error_signal.emit(exc.code, exc.message)
            self.ui.generated_signal.emit(None)
            return
        except Exception as exc:
            self.ui.error_signal.emit(GENERATION_FAILED, str(exc))
            self.ui.generated_signal.emit(None)
            return
        self.ui.generated_signal.emit(result)

    # ------------------------------------------------------------------
    # UI thread handlers (safe for Qt)
    # ------------------------------------------------------------------

    def _on_generated_ui(self, result: object) -> None:
        self.workspace.finish_request()
        self.submit_button.setEnabled(True)
        if not isinstance(result, ImageFound):
            return
        try:
            self.workspace.apply_generated(result)
        except GenerationError as exc:
            self._on_error_ui(exc.code, exc.message)
            return
        self.canvas.refresh()

    def _on_prompt_ui(self, text: str) -> None:
        if self.prompt_edit.text() != text:
            self.prompt_edit.setText(text)

    def _on_listening_ui(self, listening: bool) -> None:
        self.mic_button.setChecked(listening)
        self.mic_button.setText("Stop" if listening else "Mic")

    def _on_error_ui(self, code: str, message: str) -> None:
        if code == AUTH_FAILED:
            text = ERROR_MESSAGES[AUTH_FAILED]
        else:
            text = parse_error_message(message) or ERROR_MESSAGES.get(code, "An unexpected error occurred.")
        QMessageBox.warning(self.window, "Attention", text)
        if code == AUTH_FAILED:
            self._set_api_key()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        self.window.show()
        self.app.aboutToQuit.connect(self.quit)
        return self.app.exec()

    def quit(self) -> None:
        self.voice.stop_listening()


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app = App()
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
