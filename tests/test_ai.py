import httpx
import pytest

from app.core.config import settings
from app.services.ai import TicketAnalyzer, parse_analysis, read_response_text

from conftest import auth_headers


class TestParseAnalysis:
    def test_fenced_json(self):
        raw = (
            "Here you go:\n```json\n"
            '{"summary": "Login fails", "priority": "HIGH", "helpfulNotes": "Check SSO", '
            '"relatedSkills": ["Auth", " OAuth "]}\n```'
        )

        analysis = parse_analysis(raw)

        assert analysis.summary == "Login fails"
        assert analysis.priority == "high"
        assert analysis.helpful_notes == "Check SSO"
        assert analysis.related_skills == ["Auth", "OAuth"]

    def test_bare_object_inside_prose(self):
        raw = 'Sure! {"summary": "Slow page", "priority": "low", "relatedSkills": []} Hope that helps.'

        analysis = parse_analysis(raw)

        assert analysis.summary == "Slow page"
        assert analysis.priority == "low"

    @pytest.mark.parametrize("priority", ["urgent", "", None, 3])
    def test_unknown_priority_defaults_to_medium(self, priority):
        analysis = parse_analysis(f'{{"summary": "x", "priority": {json_value(priority)}}}')

        assert analysis.priority == "medium"

    def test_non_list_skills_are_dropped(self):
        analysis = parse_analysis('{"summary": "x", "relatedSkills": "React"}')

        assert analysis.related_skills == []

    @pytest.mark.parametrize("raw", ["", None, "no json here", "```json\nnot json\n```", "[1, 2]"])
    def test_unusable_output_gives_none(self, raw):
        assert parse_analysis(raw) is None


def json_value(value):
    if value is None:
        return "null"
    if isinstance(value, str):
        return f'"{value}"'
    return str(value)


def gemini_reply(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def test_read_response_text_joins_parts():
    data = {"candidates": [{"content": {"parts": [{"text": "a"}, {"text": "b"}]}}]}

    assert read_response_text(data) == "a\nb"
    assert read_response_text({}) == ""


@pytest.mark.parametrize(
    "data",
    [
        [{"candidates": []}],
        {"candidates": ["blocked"]},
        {"candidates": [{"content": "oops"}]},
        {"candidates": [{"content": {"parts": "text"}}]},
        None,
    ],
)
def test_read_response_text_tolerates_unexpected_shapes(data):
    assert read_response_text(data) == ""


class TestTicketAnalyzer:
    async def test_without_api_key_skips_analysis(self):
        assert await TicketAnalyzer(api_key="").analyze("t", "d") is None

    async def test_transport_errors_give_none(self, monkeypatch):
        async def unreachable(self, prompt):
            raise httpx.ConnectError("connection refused")

        monkeypatch.setattr(TicketAnalyzer, "_request", unreachable)

        assert await TicketAnalyzer(api_key="key").analyze("t", "d") is None

    async def test_prompt_carries_ticket_text(self, monkeypatch):
        prompts = []

        async def fake_request(self, prompt):
            prompts.append(prompt)
            return gemini_reply('{"summary": "ok", "priority": "medium", "relatedSkills": ["SQL"]}')

        monkeypatch.setattr(TicketAnalyzer, "_request", fake_request)

        analysis = await TicketAnalyzer(api_key="key").analyze("DB down", "Postgres refuses connections")

        assert analysis.related_skills == ["SQL"]
        assert "DB down" in prompts[0]
        assert "Postgres refuses connections" in prompts[0]

    async def test_unexpected_response_shape_gives_none(self, monkeypatch):
        async def odd_reply(self, prompt):
            return {"candidates": ["blocked"]}

        monkeypatch.setattr(TicketAnalyzer, "_request", odd_reply)

        assert await TicketAnalyzer(api_key="key").analyze("t", "d") is None


async def test_odd_ai_reply_still_creates_and_assigns_ticket(client, make_user, monkeypatch):
    async def list_reply(self, prompt):
        return [{"candidates": []}]

    monkeypatch.setattr(settings, "GEMINI_API_KEY", "key")
    monkeypatch.setattr(TicketAnalyzer, "_request", list_reply)
    creator = await make_user()
    moderator = await make_user(role="moderator")

    response = await client.post(
        "/api/tickets",
        json={"title": "VPN drops", "description": "Every ten minutes"},
        headers=auth_headers(creator),
    )

    assert response.status_code == 201
    assert response.json()["ticket"]["status"] == "PENDING"
    assert response.json()["ticket"]["priority"] == "medium"
    assert response.json()["ticket"]["assignee"]["id"] == moderator.id
