from types import SimpleNamespace

import pytest

from eurowatch.config import Config
from eurowatch.context import PipelineContext
from eurowatch.storage import create_storage

VENEZUELA_SPEECH = (
    "Mr President, the humanitarian situation in Venezuela keeps deteriorating while "
    "political prisoners remain detained without trial and millions of citizens have "
    "fled to neighbouring countries in search of food and medicine."
)
VENEZUELA_REPLY = (
    "Honourable Members, the Commission shares the concern about the detention of "
    "opposition leaders in Caracas and will keep supporting the mediation efforts of "
    "the international contact group with every instrument available."
)
FISHERIES_SPEECH = (
    "Madam President, the proposed quotas for the Baltic cod stock ignore the scientific "
    "advice entirely and our coastal fishing communities will pay the price for this "
    "decision for many years after the current season has ended."
)


def sitting_html(items):
    """A verbatim report page with one agenda header per ``(title, lines)`` item."""
    blocks = []
    for title, lines in items:
        blocks.append(
            '<table><tr><td class="doc_title">'
            '<img src="/doceo/img/arrow_title_doc.gif" alt="">'
            f"{title}</td></tr></table>"
        )
        blocks.extend(f"<p>{line}</p>" for line in lines)
    return (
        "<html><head><title>Verbatim report</title></head><body>"
        f'<div class="doc-content">{"".join(blocks)}</div>'
        "</body></html>"
    )


SITTING_HTML = sitting_html(
    [
        (
            "11.2. Situation in Venezuela (RC-B10-0123/2024)",
            [
                f"Silva Maria (S&D). – {VENEZUELA_SPEECH}",
                "We call on the regime to release them today.",
                f"Von der Leyen, President of the Commission. – {VENEZUELA_REPLY}",
            ],
        ),
        (
            "12. Fishing opportunities in the Baltic Sea",
            [f"Kowalski, on behalf of the PPE Group. – {FISHERIES_SPEECH}"],
        ),
    ]
)


class FakeCompletions:
    """Stands in for ``client.chat.completions``; replies are consumed in order.

    A reply may be a string, an exception to raise, or a callable taking
    the user message.
    """

    def __init__(self, replies, prompt_tokens=1000, completion_tokens=10):
        self.replies = list(replies)
        self.prompt_tokens = prompt_tokens
        self.completion_tokens = completion_tokens
        self.calls = []

    async def create(self, model, messages, **kwargs):
        self.calls.append(messages)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            reply = reply(messages[-1]["content"])
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=reply))],
            usage=SimpleNamespace(
                prompt_tokens=self.prompt_tokens,
                completion_tokens=self.completion_tokens,
                completion_tokens_details=None,
            ),
        )


class FakeLLM:
    def __init__(self, replies, **kwargs):
        self.chat = SimpleNamespace(completions=FakeCompletions(replies, **kwargs))

    @property
    def calls(self):
        return self.chat.completions.calls


async def no_sleep(seconds):
    return None


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{(tmp_path / 'eurowatch.db').as_posix()}"


@pytest.fixture
def storage(db_url):
    storage = create_storage(db_url)
    yield storage
    storage.dispose()


@pytest.fixture
def config(db_url, tmp_path):
    config = Config()
    config.database.url = db_url
    config.http.rate_limit_delay = 0
    config.http.max_retries = 1
    config.export.output_dir = tmp_path / "exports"
    config.analytics.persist = True
    return config


@pytest.fixture
def ctx(config, storage):
    return PipelineContext(config=config, storage=storage, show_progress=False)
