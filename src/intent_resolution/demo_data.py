"""演示数据。"""

from intent_resolution.scorer import FakeScorer

DEMO_CAPABILITY_TEXT = """\
version: 1

commands:
    "kitchen":
        switch:
            - light
            - teapot
        gradient:
            - window blinds
    living room:
        switch:
            - light
            - ventilator
        gradient:
            - temperature
            - window_blinds
    - bedroom:
        switch:
            - light
"""

DEMO_CAPABILITY_YAML = """\
commands:
  kitchen:
    switch: [light, teapot]
    gradient: [window blinds]
  living room:
    switch: [light, ventilator]
    gradient: [temperature, window_blinds]
  bedroom:
    switch: [light]
"""

DEMO_SCORES: dict[str, dict[str, float]] = {
    "turn on the kitchen light": {
        "command": 0.96,
        "question": 0.03,
        "turn on": 0.95,
        "light": 0.93,
        "kitchen": 0.94,
    },
    "make it warmer in the living room": {
        "command": 0.91,
        "question": 0.05,
        "increase": 0.92,
        "temperature": 0.90,
        "living room": 0.93,
    },
    "close the blinds in the bedroom": {
        "command": 0.94,
        "close": 0.93,
        "window blinds": 0.91,
        "bedroom": 0.95,
    },
    "what is the weather like tomorrow": {
        "command": 0.08,
        "question": 0.97,
    },
    "do something with the lights": {
        "command": 0.70,
        "light": 0.88,
        "switch": 0.40,
        "kitchen": 0.30,
    },
}


def demo_scorer() -> FakeScorer:
    """返回使用演示分数的假打分器。"""
    return FakeScorer(DEMO_SCORES)
