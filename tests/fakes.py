"""
Test doubles shared by the core tests
"""

import json
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from protocol import MessageType


class RecordingSink:
    """Stands in for a connection's outbound queue"""

    def __init__(self):
        self.frames = []

    def push(self, frame: str):
        self.frames.append(json.loads(frame))

    def of_type(self, msg_type: MessageType):
        return [f for f in self.frames if f['type'] == msg_type.value]

    def last(self, msg_type: MessageType):
        frames = self.of_type(msg_type)
        return frames[-1] if frames else None

    def types(self):
        return [f['type'] for f in self.frames]

    def clear(self):
        self.frames = []


class FakeClock:
    """Manually advanced time source"""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds: float):
        self.now += seconds
