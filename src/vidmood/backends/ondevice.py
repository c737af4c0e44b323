"""
On-device Emotion Backend

Runs a local classification model over a character-code feature vector.
Two interchangeable model formats are supported: ONNX (onnxruntime) and
TFLite (LiteRT). Runtimes are imported lazily so the package works without
either installed.
"""

import asyncio
import threading
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Callable

import numpy as np
import structlog

from vidmood.config import BackendConfig, settings
from vidmood.core.errors import ModelLoadError
from vidmood.core.keywords import extract_keywords
from vidmood.core.models import BackendTag, EmotionLabel, EmotionResult

from .base import EmotionBackend

logger = structlog.get_logger()

FEATURE_LENGTH = 128
_CODE_UNIT_SCALE = 65535.0


def _import_onnxruntime():
    """Lazy import onnxruntime to allow running without it."""
    try:
        import onnxruntime
        return onnxruntime
    except ImportError:
        return None


def _import_litert_interpreter():
    """Lazy import the LiteRT interpreter to allow running without it."""
    try:
        from ai_edge_litert.interpreter import Interpreter
        return Interpreter
    except ImportError:
        return None


# ══════════════════════════════════════════════════════════════
# Preprocessing
# ══════════════════════════════════════════════════════════════


def text_to_features(text: str, length: int = FEATURE_LENGTH) -> np.ndarray:
    """Scale each UTF-16 code unit to unit / 65535, zero-padded to length.

    Characters outside the BMP take two slots (their surrogate pair).
    """
    units = np.frombuffer(text.encode("utf-16-le", "surrogatepass"), dtype="<u2")[:length]
    features = np.zeros(length, dtype=np.float32)
    features[: len(units)] = units / _CODE_UNIT_SCALE
    return features


# ══════════════════════════════════════════════════════════════
# Model Runners
# ══════════════════════════════════════════════════════════════


class ModelFormat(str, Enum):
    """Supported on-device model file formats."""

    ONNX = "onnx"
    TFLITE = "tflite"

    @classmethod
    def from_path(cls, path: Path) -> "ModelFormat":
        suffix = path.suffix.lower().lstrip(".")
        try:
            return cls(suffix)
        except ValueError:
            raise ModelLoadError(
                f"Cannot infer model format from {path.name}; expected .onnx or .tflite"
            ) from None


class ModelRunner(ABC):
    """A loaded model handle. Closing releases it exactly once."""

    format: ModelFormat

    def __init__(self, path: Path) -> None:
        self.path = path
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @abstractmethod
    def predict(self, features: np.ndarray) -> np.ndarray:
        """Run the model and return a flat probability vector."""
        pass

    @abstractmethod
    def _release(self) -> None:
        pass

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._release()
        logger.info("On-device model released", path=str(self.path), format=self.format.value)


class OnnxModelRunner(ModelRunner):
    """onnxruntime InferenceSession wrapper."""

    format = ModelFormat.ONNX

    def __init__(self, path: Path, threads: int = 4) -> None:
        super().__init__(path)
        ort = _import_onnxruntime()
        if ort is None:
            raise ModelLoadError("onnxruntime is not installed")

        options = ort.SessionOptions()
        options.intra_op_num_threads = threads
        options.inter_op_num_threads = threads

        try:
            self._session = ort.InferenceSession(
                str(path),
                sess_options=options,
                providers=["CPUExecutionProvider"],
            )
        except Exception as e:
            raise ModelLoadError(f"Failed to load ONNX model {path}: {e}") from e

        self._input_name = self._session.get_inputs()[0].name

    def predict(self, features: np.ndarray) -> np.ndarray:
        if self._session is None:
            raise RuntimeError("ONNX session is closed")
        outputs = self._session.run(None, {self._input_name: features.reshape(1, -1)})
        return np.asarray(outputs[0], dtype=np.float32).reshape(-1)

    def _release(self) -> None:
        self._session = None


class TFLiteModelRunner(ModelRunner):
    """LiteRT (TensorFlow Lite) interpreter wrapper."""

    format = ModelFormat.TFLITE

    def __init__(self, path: Path, threads: int = 4) -> None:
        super().__init__(path)
        Interpreter = _import_litert_interpreter()
        if Interpreter is None:
            raise ModelLoadError("ai-edge-litert is not installed")

        try:
            self._interpreter = Interpreter(model_path=str(path), num_threads=threads)
            self._interpreter.allocate_tensors()
        except Exception as e:
            raise ModelLoadError(f"Failed to load TFLite model {path}: {e}") from e

        self._input_index = self._interpreter.get_input_details()[0]["index"]
        self._output_index = self._interpreter.get_output_details()[0]["index"]

    def predict(self, features: np.ndarray) -> np.ndarray:
        if self._interpreter is None:
            raise RuntimeError("TFLite interpreter is closed")
        self._interpreter.set_tensor(
            self._input_index, features.reshape(1, -1).astype(np.float32)
        )
        self._interpreter.invoke()
        output = self._interpreter.get_tensor(self._output_index)
        return np.asarray(output, dtype=np.float32).reshape(-1)

    def _release(self) -> None:
        self._interpreter = None


RunnerFactory = Callable[[Path, int], ModelRunner]

DEFAULT_RUNNERS: dict[ModelFormat, RunnerFactory] = {
    ModelFormat.ONNX: OnnxModelRunner,
    ModelFormat.TFLITE: TFLiteModelRunner,
}


# ══════════════════════════════════════════════════════════════
# Backend
# ══════════════════════════════════════════════════════════════


class OnDeviceEmotionBackend(EmotionBackend):
    """
    Emotion classification with a locally loaded model.

    The backend exclusively owns its model handle: loading a new model
    closes the previous one, and unload/close release it.

    Usage:
        backend = OnDeviceEmotionBackend()
        backend.load_model("emotion.onnx")
        result = await backend.classify("今天很开心", config)
    """

    tag = BackendTag.ONDEVICE

    def __init__(
        self,
        model_dir: str | Path | None = None,
        threads: int | None = None,
        runners: dict[ModelFormat, RunnerFactory] | None = None,
    ) -> None:
        self.model_dir = Path(model_dir or settings.ondevice_model_dir)
        self.threads = threads or settings.ondevice_threads
        self._runners = runners or DEFAULT_RUNNERS
        self._runner: ModelRunner | None = None
        self._lock = threading.Lock()

    @property
    def is_loaded(self) -> bool:
        return self._runner is not None

    @property
    def model_format(self) -> ModelFormat | None:
        runner = self._runner
        return runner.format if runner else None

    def resolve_path(self, path: str | Path) -> Path:
        path = Path(path)
        return path if path.is_absolute() else self.model_dir / path

    def load_model(
        self,
        path: str | Path,
        model_format: ModelFormat | None = None,
    ) -> ModelFormat:
        """
        Load a model file, replacing any currently loaded model.

        Raises:
            ModelLoadError: if the file is missing or cannot be loaded; the
                previously loaded model stays active
        """
        resolved = self.resolve_path(path)
        if not resolved.is_file():
            raise ModelLoadError(f"Model file not found: {resolved}")

        model_format = model_format or ModelFormat.from_path(resolved)
        factory = self._runners.get(model_format)
        if factory is None:
            raise ModelLoadError(f"No runner for model format {model_format.value}")

        runner = factory(resolved, self.threads)

        with self._lock:
            previous, self._runner = self._runner, runner
        if previous is not None:
            previous.close()

        logger.info("On-device model loaded", path=str(resolved), format=model_format.value)
        return model_format

    def unload(self) -> None:
        """Release the loaded model, if any."""
        with self._lock:
            previous, self._runner = self._runner, None
        if previous is not None:
            previous.close()

    def predict(self, text: str) -> EmotionResult:
        """Blocking inference; call from a worker thread."""
        runner = self._runner
        if runner is None:
            raise RuntimeError("No on-device model loaded")

        probabilities = runner.predict(text_to_features(text))
        labels = EmotionLabel.ordered()
        if probabilities.shape[0] != len(labels):
            raise ValueError(
                f"Model returned {probabilities.shape[0]} scores, expected {len(labels)}"
            )

        best = int(np.argmax(probabilities))
        probability = float(probabilities[best])

        return EmotionResult(
            emotion=labels[best],
            confidence=probability,
            intensity=probability,
            keywords=extract_keywords(text),
            source_backend=self.tag,
        )

    async def classify(self, text: str, config: BackendConfig) -> EmotionResult:
        return await asyncio.to_thread(self.predict, text)

    async def close(self) -> None:
        self.unload()
