import logging
import traceback

log = logging.getLogger("Events")


# --- Simple Event Emitter ---
class TypedEvent:
    def __init__(self, name=""):
        self.name = name
        self._listeners = []

    def on(self, listener):
        self._listeners.append(listener)
        def dispose():
            if listener in self._listeners: self._listeners.remove(listener)
        return dispose

    def emit(self, event_data):
        for listener in self._listeners[:]:
            try:
                listener(event_data)
            except Exception as e:
                log.error(f"Error in {self.name or 'event'} listener: {e}\n{traceback.format_exc()}")

    def off(self, listener):
        if listener in self._listeners: self._listeners.remove(listener)

    def __len__(self):
        return len(self._listeners)
