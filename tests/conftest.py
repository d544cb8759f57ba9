from __future__ import annotations

import textwrap
from pathlib import Path
from typing import List

import pytest
import yaml

from mechquest.document import QuestDocument, parse_document
from mechquest.engine import QuestEngine
from mechquest.sessions import UserSession

SAMPLE_QUEST = Path(__file__).resolve().parent.parent / "quests.yml"


class FixedRandom:
    """Random source that always reports the same index."""

    def __init__(self, index: int) -> None:
        self.index = index
        self.calls: List[int] = []

    def uniform_index(self, n: int) -> int:
        self.calls.append(n)
        return self.index


def make_document(source: str) -> QuestDocument:
    return parse_document(yaml.safe_load(textwrap.dedent(source)))


GRAPH = """
initial_screen: start
screens:
  start:
    text:
      ru: "Привет"
      en: "Hello"
      prefix: "»"
      suffix: "!"
    buttons:
      rows:
        - left:
            text: "Left"
          right:
            text:
              ru: "Направо"
              en: "Right"
        - start:
            text: "English"
            language: en
        - dice:
            text: "Roll"
            exits: [left, right, start]
  left:
    quest: true
    variables:
      hp: int
      name: string
    script: |
      hp = 10
      name = "Ada"
    text: "{name} has {hp} hp"
    buttons:
      right:
        text: "Go right"
      start:
        text: "Back"
  right:
    text: "Plain {hp}"
    buttons:
      left:
        text: "Go left"
      start:
        text: "Back"
  dice:
    text: "dice"
    buttons:
      start:
        text: "Back"
"""


@pytest.fixture
def graph() -> QuestDocument:
    return make_document(GRAPH)


@pytest.fixture
def engine(graph: QuestDocument) -> QuestEngine:
    return QuestEngine(graph, rng=FixedRandom(0))


@pytest.fixture
def session() -> UserSession:
    return UserSession(user_id=7, current_screen="start")
