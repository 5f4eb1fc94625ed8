"""
Champion checkpoints.

Champions are stored as torch checkpoints holding the flat genome and enough
metadata to rebuild the policy network. Writing a checkpoint is a side effect
of training: failures are reported and training carries on.
"""

import os
import queue
import threading

import numpy as np
import torch

from game import DeathCause, EpisodeStats
from genetics import Agent


def make_checkpoint(agent: Agent, generation: int, cfg: dict = None) -> dict:
    """Snapshot an agent; the genome is copied so later mutation cannot leak in."""
    stats = agent.stats
    checkpoint = {
        'generation': int(generation),
        'fitness': float(agent.fitness),
        'robust_score': float(agent.robust_score),
        'ticks': int(stats.ticks) if stats is not None else 0,
        'fruits': int(stats.fruits) if stats is not None else 0,
        'genome': torch.from_numpy(np.array(agent.genome, dtype=np.float32, copy=True)),
    }
    if cfg is not None:
        checkpoint['track'] = cfg['track']['mode']
        checkpoint['obs'] = cfg['track']['obs']
        checkpoint['hidden1'] = int(cfg['nn']['hidden1'])
        checkpoint['hidden2'] = int(cfg['nn']['hidden2'])
    return checkpoint


def save_champion(path: str, agent: Agent, generation: int, cfg: dict = None):
    """Write a champion checkpoint synchronously (raises on I/O errors)."""
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    torch.save(make_checkpoint(agent, generation, cfg), path)


def load_champion(path: str) -> dict:
    """Read a champion checkpoint; the genome comes back as a float32 numpy array."""
    checkpoint = torch.load(path, map_location='cpu', weights_only=True)
    record = dict(checkpoint)
    record['genome'] = checkpoint['genome'].numpy().astype(np.float32, copy=True)
    return record


def champion_to_agent(record: dict) -> Agent:
    """Rebuild an Agent from a loaded champion record."""
    agent = Agent(np.array(record['genome'], dtype=np.float32, copy=True))
    agent.fitness = float(record.get('fitness', 0.0))
    agent.robust_score = float(record.get('robust_score', 0.0))
    agent.stats = EpisodeStats(
        fruits=int(record.get('fruits', 0)),
        ticks=int(record.get('ticks', 0)),
        progress=0.0,
        death=DeathCause.NONE,
        seed=0,
        score=agent.fitness,
    )
    return agent


# =============================================================================
# ASYNC CHAMPION SAVER
# =============================================================================
class AsyncChampionSaver:
    """Asynchronous checkpoint writer to avoid blocking the training loop during torch.save()."""

    def __init__(self):
        self.save_queue = queue.Queue(maxsize=2)  # Limit queue size to avoid memory issues
        self.worker_thread = threading.Thread(target=self._save_worker, daemon=True)
        self.worker_thread.start()
        self.saving = False
        self.failures = 0

    def _save_worker(self):
        """Background worker that processes save requests."""
        while True:
            checkpoint, filepath = self.save_queue.get()
            if checkpoint is None:  # Sentinel to stop thread
                self.save_queue.task_done()
                break
            try:
                self.saving = True
                directory = os.path.dirname(filepath)
                if directory:
                    os.makedirs(directory, exist_ok=True)
                torch.save(checkpoint, filepath)
                print(f"[SAVED] Fitness={checkpoint['fitness']:.1f}, Gen {checkpoint['generation']} -> {filepath}")
            except Exception as e:
                self.failures += 1
                print(f"[ERROR] Failed to save champion {filepath}: {e}")
            finally:
                self.saving = False
                self.save_queue.task_done()

    def save_async(self, checkpoint: dict, filepath: str, block: bool = False) -> bool:
        """
        Queue a checkpoint for asynchronous saving.

        Returns False when the queue is full and `block` is not set; the skip is
        reported on the console.
        """
        try:
            self.save_queue.put((checkpoint, filepath), block=block)
            return True
        except queue.Full:
            print(f"[SKIP] Save queue full, skipping {filepath}")
            return False

    def is_saving(self):
        """Check if a save operation is in progress."""
        return self.saving or not self.save_queue.empty()

    def wait(self):
        """Block until every queued checkpoint has been written (or has failed)."""
        self.save_queue.join()

    def shutdown(self):
        """Flush pending saves and stop the saver thread."""
        if not self.worker_thread.is_alive():
            return
        self.save_queue.put((None, None))
        self.worker_thread.join(timeout=30.0)
