"""GeoGebra engine backed by a headless Chromium page running the official applet."""

from __future__ import annotations

import asyncio
import json
import uuid

from agent.config import EngineConfig
from agent.exceptions import EngineCommandError, EngineConnectionError
from agent.logs import build_file_logger
from geogebra.engine import CommandResult, GeoGebraEngine, ObjectInfo

_READY_CHECK = (
    "window.ggbReady === true && window.ggbApplet "
    "&& typeof window.ggbApplet.evalCommand === 'function'"
)

_EVAL_SCRIPT = """(cmd) => {
    try {
        const labels = window.ggbApplet.evalCommandGetLabels(cmd);
        if (labels === null || labels === undefined) {
            return {success: false, labels: [], error: 'Command rejected by GeoGebra'};
        }
        return {success: true, labels: labels ? labels.split(',') : [], error: null};
    } catch (e) {
        return {success: false, labels: [], error: String(e && e.message || e)};
    }
}"""

_OBJECT_INFO_SCRIPT = """(name) => {
    const api = window.ggbApplet;
    if (!api.exists(name)) { return null; }
    const type = api.getObjectType(name);
    const info = {
        name: name,
        type: type,
        visible: api.getVisible(name),
        defined: api.isDefined(name),
        color: api.getColor(name),
        value: null, x: null, y: null,
    };
    try { info.value = api.getValueString(name); } catch (e) {}
    if (type === 'point' || type === 'vector') {
        try { info.x = api.getXcoord(name); info.y = api.getYcoord(name); } catch (e) {}
    }
    return info;
}"""


class BrowserEngine(GeoGebraEngine):
    """Drives the GeoGebra applet through Playwright.

    Playwright is imported lazily so that local (render-only) deployments do
    not need a browser installed.
    """

    def __init__(self, config: EngineConfig, log_dir: str = "data/logs"):
        self.config = config
        self.id = uuid.uuid4().hex[:8]
        self._playwright = None
        self._browser = None
        self._page = None
        self._logger = build_file_logger("geogebra.engine", log_dir, "geogebra.log")

    async def start(self) -> None:
        if self._page is not None:
            return
        try:
            from playwright.async_api import async_playwright
        except ImportError as e:
            raise EngineConnectionError(
                "Managed engine mode requires playwright. Install with: "
                "pip install playwright && playwright install chromium"
            ) from e

        self._logger.info("Starting GeoGebra engine %s (headless=%s)", self.id, self.config.headless)
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.config.headless,
                args=["--no-sandbox", "--disable-dev-shm-usage", "--disable-gpu"],
            )
            self._page = await self._browser.new_page(
                viewport={"width": self.config.width, "height": self.config.height},
            )
            await self._page.set_content(self._applet_html())
            await self._page.wait_for_function(
                _READY_CHECK, timeout=self.config.startup_timeout * 1000
            )
        except Exception as e:
            self._logger.error("GeoGebra engine %s failed to start: %s", self.id, e)
            await self.close()
            raise EngineConnectionError(f"Failed to initialize GeoGebra: {e}") from e
        self._logger.info("GeoGebra engine %s ready", self.id)

    async def eval_command(self, command: str) -> CommandResult:
        raw = await self._evaluate(_EVAL_SCRIPT, command, command=command)
        result = CommandResult(
            success=bool(raw.get("success")),
            labels=list(raw.get("labels") or []),
            error=raw.get("error"),
        )
        if result.success:
            self._logger.info("Engine %s applied: %s", self.id, command)
        else:
            self._logger.warning("Engine %s rejected: %s (%s)", self.id, command, result.error)
        return result

    async def get_object_info(self, name: str) -> ObjectInfo | None:
        raw = await self._evaluate(_OBJECT_INFO_SCRIPT, name)
        if not raw:
            return None
        return ObjectInfo(
            name=raw["name"],
            type=raw.get("type") or "unknown",
            visible=bool(raw.get("visible", True)),
            defined=bool(raw.get("defined", True)),
            value=raw.get("value"),
            x=raw.get("x"),
            y=raw.get("y"),
            color=raw.get("color"),
        )

    async def get_all_object_names(self) -> list[str]:
        names = await self._evaluate("() => window.ggbApplet.getAllObjectNames()")
        return list(names or [])

    async def new_construction(self) -> None:
        await self._evaluate("() => window.ggbApplet.newConstruction()")
        self._logger.info("Engine %s construction cleared", self.id)

    async def export_png(self) -> str:
        data = await self._evaluate("() => window.ggbApplet.getPNGBase64(1, false, 72)")
        if not data:
            raise EngineCommandError("GeoGebra returned an empty PNG export")
        return data

    async def close(self) -> None:
        page, browser, playwright = self._page, self._browser, self._playwright
        self._page = self._browser = self._playwright = None
        for closer in (page, browser):
            if closer is None:
                continue
            try:
                await closer.close()
            except Exception as e:
                self._logger.warning("Engine %s close error: %s", self.id, e)
        if playwright is not None:
            await playwright.stop()

    async def _evaluate(self, script: str, arg=None, command: str | None = None):
        if self._page is None:
            raise EngineConnectionError(f"GeoGebra engine {self.id} is not started")
        try:
            if arg is None:
                coro = self._page.evaluate(script)
            else:
                coro = self._page.evaluate(script, arg)
            return await asyncio.wait_for(coro, timeout=self.config.command_timeout)
        except asyncio.TimeoutError as e:
            raise EngineCommandError(
                f"GeoGebra did not answer within {self.config.command_timeout}s", command
            ) from e
        except EngineCommandError:
            raise
        except Exception as e:
            if self._page.is_closed() or not self._browser.is_connected():
                raise EngineConnectionError(f"GeoGebra engine {self.id} lost its browser: {e}") from e
            raise EngineCommandError(f"GeoGebra evaluation failed: {e}", command) from e

    def _applet_html(self) -> str:
        params = {
            "appName": self.config.app_name,
            "width": self.config.width,
            "height": self.config.height,
            "showMenuBar": False,
            "showToolBar": False,
            "showAlgebraInput": False,
            "showResetIcon": False,
            "enableRightClick": False,
            "enableCAS": True,
            "language": self.config.language,
            "preventFocus": True,
        }
        return f"""<!DOCTYPE html>
<html>
<head><script src="{self.config.deploy_script_url}"></script></head>
<body>
<div id="ggb-element"></div>
<script>
    window.ggbReady = false;
    const parameters = {json.dumps(params)};
    parameters.appletOnLoad = function(api) {{
        window.ggbApplet = api;
        window.ggbReady = true;
    }};
    new GGBApplet(parameters, true).inject('ggb-element');
</script>
</body>
</html>"""
