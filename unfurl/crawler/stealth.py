"""
Browser stealth utilities for unfurl.

Minimal anti-bot detection measures applied to every render context:
- navigator.webdriver property override
- window.chrome runtime, plugins and mimeTypes shims
- notification permission and WebGL vendor masking
- hardened Chromium launch flags
"""

from typing import TYPE_CHECKING

from unfurl.utils.logging import get_logger

if TYPE_CHECKING:
    from playwright.async_api import BrowserContext

logger = get_logger(__name__)


# =============================================================================
# Stealth JavaScript Injections
# =============================================================================

STEALTH_JS = """
(() => {
    // Bundlers in some pages reference a __name helper that is absent in page worlds
    window.__name = (f) => f;

    Object.defineProperty(navigator, 'webdriver', {
        get: () => undefined,
        configurable: true
    });

    if (!window.chrome) {
        window.chrome = {};
    }
    if (!window.chrome.runtime) {
        window.chrome.runtime = {};
    }

    Object.defineProperty(navigator, 'plugins', {
        get: () => {
            const plugins = [
                { name: 'Chrome PDF Plugin', filename: 'internal-pdf-viewer', description: 'Portable Document Format' },
                { name: 'Chrome PDF Viewer', filename: 'mhjfbmdgcfjbbpaeojofohoefgiehjai', description: '' },
                { name: 'Native Client', filename: 'internal-nacl-plugin', description: '' }
            ];
            plugins.item = (i) => plugins[i];
            plugins.namedItem = (name) => plugins.find(p => p.name === name);
            plugins.refresh = () => {};
            return plugins;
        },
        configurable: true
    });

    Object.defineProperty(navigator, 'mimeTypes', {
        get: () => {
            const mimeTypes = [
                { type: 'application/pdf', suffixes: 'pdf', description: 'Portable Document Format' }
            ];
            mimeTypes.item = (i) => mimeTypes[i];
            mimeTypes.namedItem = (name) => mimeTypes.find(m => m.type === name);
            return mimeTypes;
        },
        configurable: true
    });

    const originalQuery = navigator.permissions?.query?.bind(navigator.permissions);
    if (originalQuery) {
        navigator.permissions.query = (parameters) => {
            if (parameters.name === 'notifications') {
                return Promise.resolve({ state: Notification.permission });
            }
            return originalQuery(parameters);
        };
    }

    const patchWebGL = (proto) => {
        if (!proto) return;
        const getParameter = proto.getParameter;
        proto.getParameter = function(parameter) {
            if (parameter === 37445) return 'Intel Inc.';
            if (parameter === 37446) return 'Intel Iris OpenGL Engine';
            return getParameter.call(this, parameter);
        };
    };
    patchWebGL(window.WebGLRenderingContext?.prototype);
    patchWebGL(window.WebGL2RenderingContext?.prototype);

    delete window.__playwright;
    delete window.__puppeteer;
})();
"""


async def apply_stealth_to_context(context: "BrowserContext") -> None:
    """Register the stealth script so every page in the context gets it.

    Args:
        context: Playwright browser context.
    """
    try:
        await context.add_init_script(STEALTH_JS)
        logger.debug("Stealth script applied to context")
    except Exception as e:
        logger.warning("Failed to apply stealth to context", error=str(e))


def get_stealth_args(extra_args: list[str] | None = None) -> list[str]:
    """Get Chromium launch arguments for a hardened headless process.

    Args:
        extra_args: Additional flags appended after the defaults (duplicates dropped).

    Returns:
        List of command-line arguments.
    """
    args = [
        # Containers usually lack the privileges the sandbox needs
        "--no-sandbox",
        "--disable-setuid-sandbox",
        "--disable-dev-shm-usage",
        "--disable-gpu",
        "--disable-software-rasterizer",
        "--disable-extensions",
        "--no-zygote",
        # Cap the V8 heap per renderer
        "--js-flags=--max-old-space-size=512",
        "--disable-blink-features=AutomationControlled",
    ]
    for arg in extra_args or []:
        if arg not in args:
            args.append(arg)
    return args
