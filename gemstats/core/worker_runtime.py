from __future__ import annotations

import logging
import signal
import time
from typing import Any, Callable

from gemstats.config import ProcessorConfig
from gemstats.core.models import SqsMessage
from gemstats.errors import AlreadyProcessedError, RetryableTaskError, TerminalTaskError
from gemstats.io.sqs import SQSClient

# Use "gemstats" namespace so logs appear at INFO level (not WARNING from root)
logger = logging.getLogger("gemstats.core.worker_runtime")

MessageHandler = Callable[[str], Any]


class QueueWorkerRuntime:
    """
    Sequential SQS poller shared by the event consumer and the task executor.

    Flow:
    1. Long-poll the queue for one message
    2. Hand its body to the handler
    3. Delete the message on success, on AlreadyProcessedError and on
       terminal errors; leave it for redelivery (visibility timeout, then
       DLQ) on anything else
    4. Stop after N empty polls, or on SIGTERM/SIGINT once the current
       message is done
    """

    def __init__(
        self,
        cfg: ProcessorConfig,
        sqs: SQSClient,
        queue_url: str,
        handler: MessageHandler,
        name: str = "worker",
    ):
        """
        Initialize worker runtime.

        Args:
            cfg: Processor configuration (polling settings)
            sqs: SQS client
            queue_url: Queue to poll
            handler: Called with each message body; raising means failure
            name: Used in log messages ("consumer", "worker")
        """
        self.cfg = cfg
        self.sqs = sqs
        self.queue_url = queue_url
        self.handler = handler
        self.name = name

        # Empty poll tracking
        self._empty_polls: int = 0

        # Graceful shutdown flag
        self._shutdown_requested: bool = False
        self._processing_message: bool = False

    def run_forever(self) -> None:
        """
        Main loop: poll SQS, process messages, exit after N empty polls.
        If shutdown_after_empty_polls <= 0, runs indefinitely (daemon mode for systemd).
        """
        self._install_signal_handlers()

        if self.cfg.shutdown_after_empty_polls > 0:
            logger.info(f"Starting {self.name} loop (shutdown after {self.cfg.shutdown_after_empty_polls} empty polls)")
        else:
            logger.info(f"Starting {self.name} loop (running indefinitely in daemon mode)")

        while not self._shutdown_requested:
            msg = self.sqs.receive_one(
                queue_url=self.queue_url,
                wait_seconds=self.cfg.poll_wait_seconds,
                visibility_timeout=self.cfg.visibility_timeout_seconds,
            )

            if msg is None:
                self._empty_polls += 1

                if self.cfg.shutdown_after_empty_polls > 0:
                    logger.info(f"No messages received ({self._empty_polls}/{self.cfg.shutdown_after_empty_polls})")

                    if self._empty_polls >= self.cfg.shutdown_after_empty_polls:
                        logger.info("Shutdown threshold reached, exiting")
                        break
                # In daemon mode, log less frequently
                elif self._empty_polls % 10 == 1:
                    logger.debug(
                        f"No messages, continuing to poll (daemon mode, {self._empty_polls} empty polls so far)"
                    )
                continue

            if self._shutdown_requested:
                logger.info(f"Shutdown requested, message {msg.message_id} will be redelivered after visibility timeout")
                break

            self._empty_polls = 0
            self._processing_message = True
            try:
                self.process_message(msg)
            except RuntimeError as e:
                # SQS delete failed; message comes back after visibility timeout
                logger.error(f"Failed to settle message {msg.message_id}: {e}")
            finally:
                self._processing_message = False

        logger.info(f"{self.name.capitalize()} loop stopped")

    def process_message(self, msg: SqsMessage) -> bool:
        """
        Run the handler on one message and settle it.

        Returns:
            True if the message was deleted from the queue
        """
        start_time = time.time()
        logger.info(f"Received message from SQS: {msg.message_id}")

        try:
            self.handler(msg.body)
        except AlreadyProcessedError as e:
            # Expected with at-least-once delivery, not a failure
            logger.warning(f"Skipping message {msg.message_id}: {e}")
            self.sqs.delete(self.queue_url, msg.receipt_handle)
            return True
        except Exception as exc:
            retryable, reason = self._classify_exception(exc)
            logger.error(f"Message {msg.message_id} failed (retryable={retryable}): {reason}", exc_info=True)
            if retryable:
                # Don't delete message - let it go back to queue or DLQ
                return False
            self.sqs.delete(self.queue_url, msg.receipt_handle)
            return True

        self.sqs.delete(self.queue_url, msg.receipt_handle)
        elapsed_ms = (time.time() - start_time) * 1000
        logger.info(f"Successfully processed message: {msg.message_id} ({elapsed_ms:.0f}ms)")
        return True

    def _classify_exception(self, exc: Exception) -> tuple[bool, str]:
        """
        Returns (retryable, reason).
        Default: retryable=True unless it's a TerminalTaskError.
        """
        if isinstance(exc, TerminalTaskError):
            return False, str(exc)
        if isinstance(exc, RetryableTaskError):
            return True, str(exc)
        return True, f"{type(exc).__name__}: {exc}"

    def _install_signal_handlers(self) -> None:
        """
        Install signal handlers for graceful shutdown.

        Handles SIGTERM (sent by systemd during shutdown) and SIGINT (Ctrl+C).
        The first signal stops polling after the current message; a second
        one forces an immediate exit.
        """

        def signal_handler(signum: int, frame: Any) -> None:
            sig_name = signal.Signals(signum).name
            if not self._shutdown_requested:
                logger.info(f"Received {sig_name} signal. Initiating graceful shutdown.")
                self._shutdown_requested = True
                if self._processing_message:
                    logger.info("Currently processing a message. Will complete it before shutting down.")
            else:
                logger.warning(
                    f"Received second {sig_name} signal. Forcing immediate shutdown. "
                    "Current message (if any) will be redelivered after visibility timeout expires."
                )
                raise KeyboardInterrupt("Forced shutdown by second signal")

        signal.signal(signal.SIGTERM, signal_handler)
        signal.signal(signal.SIGINT, signal_handler)
