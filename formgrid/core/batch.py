"""
Batch processing of many documents with bounded concurrency.

Documents are processed in fixed-size chunks: every chunk runs on a thread
pool of ``max_workers`` threads and must finish before the next chunk starts.
A failure in one document, including a failure on any of its pages, is
recorded on its BatchItem and never stops its siblings. Exceptions raised by
progress callbacks are logged and ignored.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from formgrid.core.models import BatchItem, PageData
from formgrid.core.pipeline import FieldDetectionPipeline, load_pages
from formgrid.utils.exceptions import BatchProcessingError, PageProcessingError
from formgrid.utils.logging_config import ProgressTracker, log_memory_usage

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4

# A document is either a JSON page file or a (name, pages) pair
Document = Union[str, Path, Tuple[str, Sequence[PageData]]]
ProgressCallback = Callable[[int, int, BatchItem], None]
ItemCallback = Callable[[BatchItem], None]


def _document_name(document: Document) -> str:
    if isinstance(document, (str, Path)):
        return Path(document).stem
    return str(document[0])


def _document_pages(document: Document) -> Sequence[PageData]:
    if isinstance(document, (str, Path)):
        return load_pages(document)
    return document[1]


class BatchProcessor:
    """
    Run a FieldDetectionPipeline over many documents.

    Example usage:
        processor = BatchProcessor(FieldDetectionPipeline(), max_workers=4)
        items = processor.process_batch(["a.json", "b.json"])
        stats = BatchProcessor.get_processing_stats(items)
    """

    def __init__(self, pipeline: Optional[FieldDetectionPipeline] = None,
                 max_workers: int = DEFAULT_MAX_WORKERS,
                 context: Optional[Sequence[str]] = None):
        if max_workers < 1:
            raise BatchProcessingError(f"max_workers must be at least 1, got {max_workers}")
        self.pipeline = pipeline if pipeline is not None else FieldDetectionPipeline()
        self.max_workers = max_workers
        self.context = list(context or [])
        self._cancel_event = threading.Event()
        self._callback_lock = threading.Lock()

    def cancel(self) -> None:
        """Stop before the next chunk; documents not started become 'cancelled'."""
        self._cancel_event.set()
        logger.info("Batch cancellation requested")

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def process_batch(self, documents: Sequence[Document],
                      on_progress: Optional[ProgressCallback] = None,
                      on_item_complete: Optional[ItemCallback] = None) -> List[BatchItem]:
        """Process ``documents`` and return one BatchItem per input, in input order.

        Args:
            documents: JSON page files or ``(name, pages)`` pairs
            on_progress: Called as ``(completed, total, item)`` after each document
            on_item_complete: Called with each finished item

        Returns:
            BatchItems with status 'completed', 'error' or 'cancelled'
        """
        if documents is None:
            raise BatchProcessingError("documents must not be None")

        self._cancel_event.clear()
        stamp = int(time.time() * 1000)
        items = [
            BatchItem(id=f"batch_{stamp}_{i}", name=_document_name(doc))
            for i, doc in enumerate(documents)
        ]
        total = len(items)
        if not total:
            return items

        chunks = [range(i, min(i + self.max_workers, total)) for i in range(0, total, self.max_workers)]
        progress = ProgressTracker("Batch processing", len(chunks), logger)
        completed = [0]

        def notify(callback: Optional[Callable], *args) -> None:
            if callback is None:
                return
            try:
                callback(*args)
            except Exception as e:
                logger.warning(f"Batch callback {getattr(callback, '__name__', callback)!r} failed: {e}")

        def finish(item: BatchItem) -> None:
            with self._callback_lock:
                completed[0] += 1
                notify(on_progress, completed[0], total, item)
                notify(on_item_complete, item)

        def run(index: int) -> None:
            item = items[index]
            item.status = "processing"
            try:
                item.fields = self.pipeline.process_document(
                    _document_pages(documents[index]), self.context, strict=True
                )
                item.status = "completed"
            except Exception as e:
                logger.warning(f"Batch item '{item.name}' failed: {e}")
                item.status = "error"
                item.error = str(e) or type(e).__name__
                if isinstance(e, PageProcessingError):
                    # Keep what the healthy pages produced
                    item.fields = list(e.fields)
            finish(item)

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            for chunk_no, chunk in enumerate(chunks, start=1):
                if self._cancel_event.is_set():
                    for index in range(chunk.start, total):
                        items[index].status = "cancelled"
                    logger.info(f"Batch cancelled with {total - chunk.start} documents not started")
                    break

                progress.start_step(f"Chunk {chunk_no}")
                # Waiting on every future keeps chunks strictly sequential
                for future in [executor.submit(run, index) for index in chunk]:
                    future.result()
                progress.complete_step(len(chunk), f"{len(chunk)} documents")

        progress.finish(success=not self._cancel_event.is_set())
        log_memory_usage(logger, "batch processing")
        return items

    @staticmethod
    def get_processing_stats(items: Sequence[BatchItem]) -> Dict[str, Any]:
        total = len(items)
        counts = {status: 0 for status in BatchItem.VALID_STATUSES}
        for item in items:
            counts[item.status] += 1
        return {
            "total": total,
            "completed": counts["completed"],
            "failed": counts["error"],
            "processing": counts["processing"],
            "pending": counts["pending"],
            "cancelled": counts["cancelled"],
            "success_rate": counts["completed"] / total if total else 0.0,
        }
