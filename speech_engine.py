import asyncio
import logging
import queue
import threading

import pyttsx3

from config import SPEECH_BASE_RATE_WPM
from errors import SpeechUnavailable

logger = logging.getLogger(__name__)


class SpeechEngine:
    """
    Text-to-speech on a dedicated worker thread.

    pyttsx3 blocks in runAndWait(), so utterances are queued to the worker and
    the completion is handed back to the asyncio loop. Each utterance gets a
    token; cancel() and any newer speak() make older tokens stale. The worker
    stops a stale utterance from its own word callbacks, and stale completions
    are dropped instead of being delivered.
    """

    def __init__(self, loop=None, base_rate=SPEECH_BASE_RATE_WPM, init_timeout=2.0):
        logger.info("Initializing SpeechEngine with pyttsx3")
        self.loop = loop
        self.base_rate = base_rate
        self.engine = None
        self.available = False
        self.speaking = False
        self._token = 0
        self._current = None
        self._lock = threading.Lock()
        self._queue = queue.Queue()
        self._ready = threading.Event()

        self.thread = threading.Thread(target=self._worker, daemon=True)
        self.thread.start()
        if not self._ready.wait(timeout=init_timeout):
            logger.error("Speech worker did not start in time")
        logger.info(f"Speech available: {self.available}")

    def _worker(self):
        try:
            self.engine = pyttsx3.init()
            self.engine.connect('started-utterance', self._stop_if_stale)
            self.engine.connect('started-word', self._stop_if_stale)
            self.available = True
        except Exception as e:
            logger.error(f"Failed to initialize pyttsx3: {e}")
            self.available = False
        finally:
            self._ready.set()

        while self.available:
            item = self._queue.get()
            if item is None:
                break
            token, text, rate, loop, on_done, on_error = item
            error = None
            try:
                with self._lock:
                    if token != self._token:
                        continue
                    self._current = token
                    self.engine.setProperty('rate', int(self.base_rate * rate))
                    self.engine.say(text)
                self.engine.runAndWait()
            except Exception as e:
                logger.error(f"Speech synthesis failed: {e}")
                error = e
            try:
                loop.call_soon_threadsafe(self._deliver, token, error, on_done, on_error)
            except RuntimeError:
                logger.warning("Event loop closed before speech completion could be delivered")

        logger.info("Speech worker stopped")

    def speak(self, text, rate=1.0, on_done=None, on_error=None):
        """Queue `text`; any utterance still in flight is cancelled first."""
        if not self.available:
            raise SpeechUnavailable("Speech not supported on this device.")
        loop = self.loop or asyncio.get_running_loop()
        self.cancel()
        with self._lock:
            self._token += 1
            token = self._token
            self.speaking = True
        logger.info(f"Speaking {len(text.split())} words")
        self._queue.put((token, text, rate, loop, on_done, on_error))
        return token

    def cancel(self):
        with self._lock:
            self._token += 1
            self.speaking = False

    def _stop_if_stale(self, **kwargs):
        """pyttsx3 callback, runs on the worker thread inside runAndWait()."""
        if self._current != self._token:
            self.engine.stop()

    def _deliver(self, token, error, on_done, on_error):
        if token != self._token:
            return
        self.speaking = False
        if error is None:
            if on_done:
                on_done()
        elif on_error:
            on_error(error)

    def close(self):
        self.cancel()
        self._queue.put(None)
        if self.thread.is_alive():
            self.thread.join(timeout=2.0)
