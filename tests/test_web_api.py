import json
from pathlib import Path

from agent.config import load_config
from agent.exceptions import EngineConnectionError, ProviderAuthError
from agent.messages import ModelResponse, ToolCall
from agent.providers import ChatProvider
from geogebra.engine import CommandResult, GeoGebraEngine, ObjectInfo
from web.app import create_app


class StubProvider(ChatProvider):
    name = "stub"

    def __init__(self, responses, seen):
        super().__init__(api_key="sk-test", model="stub-model", base_url="http://localhost")
        self.responses = responses
        self.seen = seen

    async def invoke(self, conversation, tools):
        self.seen.append({"conversation": list(conversation), "tools": list(tools)})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class MemoryEngine(GeoGebraEngine):
    def __init__(self):
        self.objects = {}

    async def start(self):
        pass

    async def eval_command(self, command):
        label = command.split("=")[0].split("(")[0].strip()
        self.objects[label] = ObjectInfo(name=label, type="function", value=command)
        return CommandResult(success=True, labels=[label])

    async def get_object_info(self, name):
        return self.objects.get(name)

    async def get_all_object_names(self):
        return list(self.objects)

    async def new_construction(self):
        self.objects.clear()

    async def export_png(self):
        return "iVBORw0KGgo="

    async def close(self):
        pass


class UnreachableEngine(MemoryEngine):
    async def start(self):
        raise EngineConnectionError("no browser")


def _make_app(tmp_path: Path, config_data: dict, responses=None, engine_factory=None):
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"data_dir": str(tmp_path / "data"), **config_data}))
    config = load_config(str(config_path))
    seen = []
    created = []

    def provider_factory(provider, api_key, model, base_url, settings):
        created.append((provider, api_key, model, base_url))
        return StubProvider(responses if responses is not None else [], seen)

    app = create_app(config, provider_factory=provider_factory, engine_factory=engine_factory)
    app.testing = True
    return app, seen, created


def _chat_body(**overrides):
    body = {
        "messages": [{"role": "user", "content": "Plot x^2 and shade 0..2"}],
        "config": {"provider": "openai", "apiKey": "sk-test", "model": "gpt-4"},
        "sessionId": "sess-1",
    }
    body.update(overrides)
    return body


def _plot_and_integral():
    return ModelResponse(tool_calls=[
        ToolCall(id="c1", tool_name="geogebra_plot_function",
                 parameters={"name": "f", "expression": "x^2"}),
        ToolCall(id="c2", tool_name="geogebra_plot_integral",
                 parameters={"name": "A", "functionName": "f", "lowerBound": 0, "upperBound": 2}),
    ])


def test_chat_message_runs_tool_loop(tmp_path):
    responses = [_plot_and_integral(), ModelResponse(content="The shaded area is 8/3.")]
    app, seen, created = _make_app(tmp_path, {}, responses)
    client = app.test_client()

    resp = client.post("/api/chat/message", json=_chat_body())
    assert resp.status_code == 200
    payload = resp.get_json()
    assert payload["message"]["role"] == "assistant"
    assert payload["message"]["content"] == "The shaded area is 8/3."
    assert [tc["result"]["command"] for tc in payload["toolCalls"]] == [
        "f(x) = x^2",
        "A = Integral(f, 0, 2)",
    ]
    assert payload["toolCalls"][0]["type"] == "geogebra"
    assert payload["objects"] == []
    assert created == [("openai", "sk-test", "gpt-4", None)]
    assert len(seen) == 2
    assert seen[0]["conversation"][0].role == "system"
    assert len(seen[0]["tools"]) == 8


def test_failed_tool_calls_are_noted(tmp_path):
    responses = [
        ModelResponse(tool_calls=[
            ToolCall(id="c1", tool_name="geogebra_create_point", parameters={"name": "A", "x": 0, "y": 0}),
            ToolCall(id="c2", tool_name="geogebra_create_point", parameters={"name": "B"}),
        ]),
        ModelResponse(content="Drew what I could."),
    ]
    app, _, _ = _make_app(tmp_path, {}, responses)
    resp = app.test_client().post("/api/chat/message", json=_chat_body())
    assert resp.status_code == 200
    content = resp.get_json()["message"]["content"]
    assert content.startswith("Drew what I could.")
    assert "1/2" in content


def test_agent_without_tools(tmp_path):
    app, seen, _ = _make_app(tmp_path, {}, [ModelResponse(content="## Step 1")])
    resp = app.test_client().post("/api/chat/message", json=_chat_body(agentId="step-solver"))
    assert resp.status_code == 200
    assert seen[0]["tools"] == []
    assert resp.get_json()["agentId"] == "step-solver"


def test_unknown_agent_is_404(tmp_path):
    app, _, _ = _make_app(tmp_path, {})
    resp = app.test_client().post("/api/chat/message", json=_chat_body(agentId="poet"))
    assert resp.status_code == 404


def test_chat_requires_messages_and_config(tmp_path):
    app, _, _ = _make_app(tmp_path, {})
    client = app.test_client()
    assert client.post("/api/chat/message", json={"config": {"apiKey": "x"}}).status_code == 400
    assert client.post("/api/chat/message", json={"messages": [{"role": "user", "content": "hi"}]}).status_code == 400
    body = _chat_body(config={"provider": "openai"})
    assert client.post("/api/chat/message", json=body).status_code == 400


def test_provider_error_is_502(tmp_path):
    app, _, _ = _make_app(tmp_path, {}, [ProviderAuthError("invalid key", status=401)])
    resp = app.test_client().post("/api/chat/message", json=_chat_body())
    assert resp.status_code == 502
    payload = resp.get_json()
    assert payload["error"] == "Something went wrong, please check your configuration."
    assert "invalid key" in payload["detail"]


def test_sessions_are_stored_and_deleted(tmp_path):
    app, _, _ = _make_app(tmp_path, {}, [ModelResponse(content="hi")])
    client = app.test_client()
    client.post("/api/chat/message", json=_chat_body())

    sessions = client.get("/api/chat/sessions").get_json()["sessions"]
    assert [s["sessionId"] for s in sessions] == ["sess-1"]
    assert "sk-test" not in json.dumps(sessions)

    assert client.delete("/api/chat/session/sess-1").get_json() == {"success": True}
    assert client.get("/api/chat/sessions").get_json()["sessions"] == []
    # unknown ids are acknowledged too
    resp = client.delete("/api/chat/session/never-existed")
    assert resp.status_code == 200
    assert resp.get_json() == {"success": True}


def test_agents_routes(tmp_path):
    app, _, _ = _make_app(tmp_path, {})
    client = app.test_client()
    agents = client.get("/api/agents").get_json()["agents"]
    assert len(agents) == 5
    assert client.get("/api/agents/geogebra").get_json()["tools"] == ["geogebra"]
    assert client.get("/api/agents/poet").status_code == 404


def test_config_routes(tmp_path):
    app, _, _ = _make_app(tmp_path, {})
    client = app.test_client()

    def validate(body):
        return client.post("/api/config/validate", json=body).get_json()

    assert validate({"provider": "openai", "apiKey": "sk-abc"})["valid"] is True
    assert validate({"provider": "openai", "apiKey": "abc"})["valid"] is False
    assert validate({"provider": "anthropic", "apiKey": "sk-abc"})["valid"] is False
    assert validate({"provider": "anthropic", "apiKey": "sk-ant-abc"})["valid"] is True
    assert validate({"provider": "custom", "apiKey": "k"})["valid"] is False
    assert validate({"provider": "custom", "apiKey": "k", "baseURL": "localhost"})["valid"] is False
    assert validate({"provider": "custom", "apiKey": "k", "baseURL": "http://localhost:8000/v1"})["valid"] is True
    assert client.post("/api/config/validate", json={}).status_code == 400

    models = client.get("/api/config/models/anthropic").get_json()["models"]
    assert "claude-3-5-sonnet-20241022" in models
    assert client.get("/api/config/models/unknown").get_json()["models"] == []


def test_geogebra_routes_local_mode(tmp_path):
    app, _, _ = _make_app(tmp_path, {})
    client = app.test_client()
    assert client.get("/api/geogebra/objects").get_json() == {"objects": []}
    assert client.post("/api/geogebra/clear").get_json()["command"] == "Delete(*)"

    resp = client.post("/api/geogebra/command", json={"command": "A = (1, 2)"})
    assert resp.status_code == 200
    assert resp.get_json() == {"success": True, "command": "A = (1, 2)"}

    assert client.post("/api/geogebra/command", json={}).status_code == 400
    assert client.get("/api/geogebra/export/png").status_code == 400


def test_managed_mode_reports_objects(tmp_path):
    responses = [_plot_and_integral(), ModelResponse(content="Done.")]
    app, _, _ = _make_app(
        tmp_path, {"engine": {"mode": "managed"}}, responses, engine_factory=MemoryEngine
    )
    client = app.test_client()

    resp = client.post("/api/chat/message", json=_chat_body())
    assert resp.status_code == 200
    payload = resp.get_json()
    assert {o["name"] for o in payload["objects"]} == {"f", "A"}
    assert payload["toolCalls"][0]["result"]["objectInfo"]["name"] == "f"

    # the pooled engine keeps its construction between requests
    objects = client.get("/api/geogebra/objects").get_json()["objects"]
    assert {o["name"] for o in objects} == {"f", "A"}
    assert client.get("/api/geogebra/export/png").get_json()["png"] == "iVBORw0KGgo="
    client.post("/api/geogebra/clear")
    assert client.get("/api/geogebra/objects").get_json()["objects"] == []


def test_health(tmp_path):
    app, _, _ = _make_app(tmp_path, {})
    payload = app.test_client().get("/health").get_json()
    assert payload["status"] == "ok"
    assert payload["engineMode"] == "local"
    assert "timestamp" in payload


def test_metrics(tmp_path):
    app, _, _ = _make_app(tmp_path, {"telemetry": {"enabled": True}}, [ModelResponse(content="hi")])
    client = app.test_client()
    assert client.post("/api/chat/message", json=_chat_body()).status_code == 200
    payload = client.get("/api/metrics").get_json()
    assert payload["enabled"] is True
    assert payload["sessions"][0]["session_id"] == "sess-1"
    assert payload["sessions"][0]["metrics"]["outcome"] == "answer"


def test_session_id_must_be_a_safe_name(tmp_path):
    app, seen, _ = _make_app(tmp_path, {"telemetry": {"enabled": True}}, [ModelResponse(content="hi")])
    client = app.test_client()

    for bad in ("../../escaped", "a/b", "x" * 65, 42):
        resp = client.post("/api/chat/message", json=_chat_body(sessionId=bad))
        assert resp.status_code == 400
    assert seen == []
    assert not (tmp_path / "escaped.jsonl").exists()
    assert app.config["telemetry"] == {}


def test_telemetry_follows_session_eviction(tmp_path):
    responses = [ModelResponse(content=f"answer {i}") for i in range(6)]
    app, _, _ = _make_app(
        tmp_path, {"telemetry": {"enabled": True}, "session": {"max_sessions": 2}}, responses
    )
    client = app.test_client()

    for i in range(5):
        assert client.post("/api/chat/message", json=_chat_body(sessionId=f"s{i}")).status_code == 200
    # requests without a sessionId get a fresh one each time
    assert client.post("/api/chat/message", json=_chat_body(sessionId=None)).status_code == 200

    assert len(app.config["session_store"]) == 2
    assert set(app.config["telemetry"]) == {s["sessionId"] for s in app.config["session_store"].list_sessions()}


def test_unreachable_engine_is_json_500(tmp_path):
    app, _, _ = _make_app(tmp_path, {"engine": {"mode": "managed"}}, engine_factory=UnreachableEngine)
    client = app.test_client()

    for resp in (
        client.get("/api/geogebra/objects"),
        client.post("/api/geogebra/clear"),
        client.post("/api/geogebra/command", json={"command": "A = (1, 2)"}),
        client.get("/api/geogebra/export/png"),
    ):
        assert resp.status_code == 500
        assert "no browser" in resp.get_json()["error"]
