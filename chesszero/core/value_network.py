"""Learned position evaluator: a small value MLP over the encoded planes.

Model: MLP(768 -> hidden (ReLU) -> 1 (sigmoid)), predicting White's expected
score in [0, 1]. Trained with minibatch SGD on mean squared error.
Backend: NumPy (no external ML framework required).
"""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Optional, Sequence

import numpy as np

from chesszero.config import CONFIG
from chesszero.core.encoding import ENCODED_SHAPE
from chesszero.core.evaluator import TrainingSample

logger = logging.getLogger(__name__)

FEATURE_DIM = int(np.prod(ENCODED_SHAPE))


def _relu(x: np.ndarray) -> np.ndarray:
    return np.maximum(x, 0.0)


def _sigmoid(x: np.ndarray) -> np.ndarray:
    return 1.0 / (1.0 + np.exp(-np.clip(x, -40.0, 40.0)))


class ValueNetwork:
    def __init__(
        self,
        hidden_size: Optional[int] = None,
        learning_rate: Optional[float] = None,
        epochs: Optional[int] = None,
        batch_size: Optional[int] = None,
        seed: int = 0,
    ):
        cfg = CONFIG.eval
        self.hidden_size = hidden_size or cfg.hidden_size
        self.learning_rate = learning_rate or cfg.learning_rate
        self.epochs = epochs or cfg.epochs
        self.batch_size = batch_size or cfg.batch_size
        self._rng = np.random.default_rng(seed)

        # He init for the ReLU layer
        self.W1 = self._rng.normal(0.0, np.sqrt(2.0 / FEATURE_DIM),
                                   size=(FEATURE_DIM, self.hidden_size)).astype(np.float32)
        self.b1 = np.zeros(self.hidden_size, dtype=np.float32)
        self.W2 = self._rng.normal(0.0, np.sqrt(1.0 / self.hidden_size),
                                   size=(self.hidden_size,)).astype(np.float32)
        self.b2 = np.float32(0.0)

        self.is_training = False
        self.training_history: list[dict] = []

    def forward(self, x: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        h_pre = x @ self.W1 + self.b1
        h = _relu(h_pre)
        value = _sigmoid(h @ self.W2 + self.b2)
        return h_pre, h, value

    def predict(self, encoded_batch: np.ndarray) -> np.ndarray:
        x = np.asarray(encoded_batch, dtype=np.float32).reshape(-1, FEATURE_DIM)
        return self.forward(x)[2]

    def evaluate(self, encoded: np.ndarray) -> float:
        """White's expected score for one encoded position."""
        return float(self.predict(encoded)[0])

    async def train_on_batch(self, samples: Sequence[TrainingSample]) -> dict:
        """Fit the network to ``(encoded position, target)`` pairs.

        Yields to the event loop between epochs. Raises RuntimeError if a
        session is already running and ValueError for an empty batch.
        """
        if self.is_training:
            raise RuntimeError("Model is already training")
        if not samples:
            raise ValueError("No training samples")

        self.is_training = True
        try:
            x = np.stack([np.asarray(s[0], dtype=np.float32).reshape(FEATURE_DIM) for s in samples])
            t = np.asarray([float(s[1]) for s in samples], dtype=np.float32)
            n = len(t)
            lr = self.learning_rate
            losses = []

            for _ in range(self.epochs):
                order = self._rng.permutation(n)
                epoch_loss = 0.0
                for start in range(0, n, self.batch_size):
                    idx = order[start:start + self.batch_size]
                    xb, tb = x[idx], t[idx]

                    h_pre, h, value = self.forward(xb)
                    err = value - tb
                    epoch_loss += float(np.sum(err * err))

                    dz = 2.0 * err * value * (1.0 - value) / len(idx)
                    dW2 = h.T @ dz
                    db2 = float(np.sum(dz))
                    dh = np.outer(dz, self.W2)
                    dh[h_pre <= 0.0] = 0.0
                    dW1 = xb.T @ dh
                    db1 = dh.sum(axis=0)

                    self.W1 -= lr * dW1
                    self.b1 -= lr * db1
                    self.W2 -= lr * dW2
                    self.b2 = np.float32(self.b2 - lr * db2)

                losses.append(epoch_loss / n)
                await asyncio.sleep(0)

            report = {
                "timestamp": time.time(),
                "samples": n,
                "epochs": self.epochs,
                "loss": losses,
            }
            self.training_history.append(report)
            logger.info("Trained value network on %d samples, final loss %.5f", n, losses[-1])
            return report
        finally:
            self.is_training = False

    def get_model_info(self) -> dict:
        return {
            "status": "ready",
            "total_params": int(self.W1.size + self.b1.size + self.W2.size + 1),
            "input_shape": list(ENCODED_SHAPE),
            "hidden_size": self.hidden_size,
            "learning_rate": self.learning_rate,
            "training_sessions": len(self.training_history),
            "is_training": self.is_training,
        }

    def save(self, path: str | Path) -> None:
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        np.savez_compressed(
            p,
            W1=self.W1,
            b1=self.b1,
            W2=self.W2,
            b2=np.asarray([self.b2], dtype=np.float32),
            learning_rate=np.asarray([self.learning_rate], dtype=np.float64),
        )

    @classmethod
    def load(cls, path: str | Path, **kwargs) -> "ValueNetwork":
        with np.load(Path(path)) as data:
            W1 = data["W1"].astype(np.float32)
            net = cls(hidden_size=W1.shape[1],
                      learning_rate=kwargs.pop("learning_rate", float(data["learning_rate"][0])),
                      **kwargs)
            net.W1 = W1
            net.b1 = data["b1"].astype(np.float32)
            net.W2 = data["W2"].astype(np.float32)
            net.b2 = np.float32(data["b2"][0])
        return net
