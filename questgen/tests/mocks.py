from typing import Any, Dict, List, Optional, Tuple

from questgen.core.errors import ContentGenerationError
from questgen.features.notifications.service import NotificationKind
from questgen.models.paper import BlueprintItem, GeneratedQuestion
from questgen.models.user import User


class RecordingNotifier:
    def __init__(self):
        self.sent: List[Tuple[NotificationKind, User, Dict[str, Any]]] = []

    def notify(self, kind: NotificationKind, user: User, extra: Optional[Dict[str, Any]] = None) -> None:
        self.sent.append((kind, user, extra or {}))

    def kinds(self) -> List[NotificationKind]:
        return [kind for kind, _, _ in self.sent]


class FakeGenerator:
    """Returns count questions per blueprint row."""

    def __init__(self):
        self.calls = []

    def generate(self, blueprint: List[BlueprintItem], class_level: str, subject: str, context: str) -> List[GeneratedQuestion]:
        self.calls.append((list(blueprint), class_level, subject, context))
        questions = []
        for item in blueprint:
            for n in range(item.count):
                questions.append(
                    GeneratedQuestion(
                        id=f"{item.id}_q{n}",
                        blueprint_id=item.id,
                        type=item.type,
                        marks=item.marks_per_question,
                        question_text=f"{item.chapter} question {n + 1}",
                        section="Section A",
                    )
                )
        return questions


class FailingGenerator:
    def __init__(self):
        self.calls = 0

    def generate(self, blueprint, class_level, subject, context):
        self.calls += 1
        raise ContentGenerationError("upstream unavailable")


class EmptyGenerator:
    def generate(self, blueprint, class_level, subject, context):
        return []


class CrashingGenerator:
    def generate(self, blueprint, class_level, subject, context):
        raise RuntimeError("upstream exploded")


class FakeMessage:
    def __init__(self, content: str):
        self.content = content

class FakeChoice:
    def __init__(self, content: str):
        self.message = FakeMessage(content)

class FakeCompletion:
    def __init__(self, content: str):
        self.choices = [FakeChoice(content)]

class NoChoicesCompletion:
    choices: List[FakeChoice] = []

class FakeCompletions:
    def __init__(self, content: str):
        self.content = content
        self.kwargs = None

    def create(self, *args, **kwargs):
        self.kwargs = kwargs
        return FakeCompletion(self.content)

class FakeChat:
    def __init__(self, content: str):
        self.completions = FakeCompletions(content)

class FakeGroq:
    def __init__(self, content: str = "[]"):
        self.chat = FakeChat(content)
