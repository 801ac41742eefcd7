"""
Stealth/anti-bot profile applied to every browser context.

Provides:
- Webdriver property hiding, mock plugins, languages and chrome runtime
- Canvas, WebGL and audio fingerprint noise
- Hardware concurrency, device memory and screen randomization
- User agent, viewport and request header rotation
- Automation flag disabling at launch

EXCLUDES: CAPTCHA solving (not attempted)
"""

import random
from typing import Dict, List, Optional

# Standard user agent pool (rotated randomly)
USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.2 Safari/605.1.15",
]

VIEWPORTS = [
    {"width": 1920, "height": 1080},
    {"width": 1536, "height": 864},
    {"width": 1366, "height": 768},
    {"width": 1440, "height": 900},
    {"width": 2560, "height": 1440},
]

ACCEPT_LANGUAGES = ["en-GB,en;q=0.9", "en-US,en;q=0.9", "en-GB,en-US;q=0.9,en;q=0.8"]

LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-features=IsolateOrigins,site-per-process",
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--disable-gpu",
    "--window-size=1920,1080",
]

# Stealth init script for Playwright (injected into every context)
_STEALTH_INIT_SCRIPT = """
// Hide webdriver property
Object.defineProperty(navigator, 'webdriver', {
    get: () => undefined,
    configurable: true
});

// Mock plugins array (Chrome-like)
Object.defineProperty(navigator, 'plugins', {
    get: () => [
        {name: 'Chrome PDF Plugin', filename: 'internal-pdf-viewer'},
        {name: 'Chrome PDF Viewer', filename: 'mhjfbmdgcfjbbpaeojofohoefgiehjai'},
        {name: 'Native Client', filename: 'internal-nacl-plugin'}
    ],
    configurable: true
});

// Mock languages
Object.defineProperty(navigator, 'languages', {
    get: () => ['en-GB', 'en-US', 'en'],
    configurable: true
});

// Mock permissions query
if (navigator.permissions) {
    const origQuery = navigator.permissions.query.bind(navigator.permissions);
    navigator.permissions.query = (params) => params.name === 'notifications'
        ? Promise.resolve({state: 'denied'})
        : origQuery(params);
}

// Mock chrome runtime
window.chrome = {runtime: {}, loadTimes: () => ({}), csi: () => ({})};

// Canvas noise
const origToDataURL = HTMLCanvasElement.prototype.toDataURL;
HTMLCanvasElement.prototype.toDataURL = function (type, quality) {
    const ctx = this.getContext('2d');
    if (ctx) {
        const imageData = ctx.getImageData(0, 0, this.width, this.height);
        for (let i = 0; i < imageData.data.length; i += 400) {
            imageData.data[i] = imageData.data[i] ^ (Math.random() > 0.5 ? 1 : 0);
        }
        ctx.putImageData(imageData, 0, 0);
    }
    return origToDataURL.call(this, type, quality);
};
const origGetImageData = CanvasRenderingContext2D.prototype.getImageData;
CanvasRenderingContext2D.prototype.getImageData = function (sx, sy, sw, sh) {
    const imageData = origGetImageData.call(this, sx, sy, sw, sh);
    for (let i = 0; i < imageData.data.length; i += 400) {
        imageData.data[i] = imageData.data[i] ^ (Math.random() > 0.5 ? 1 : 0);
    }
    return imageData;
};

// WebGL vendor/renderer
const RENDERERS = [
    'ANGLE (NVIDIA GeForce GTX 1080 Direct3D11 vs_5_0 ps_5_0)',
    'ANGLE (NVIDIA GeForce RTX 2070 Direct3D11 vs_5_0 ps_5_0)',
    'ANGLE (Intel(R) UHD Graphics 620 Direct3D11 vs_5_0 ps_5_0)',
    'ANGLE (AMD Radeon RX 580 Direct3D11 vs_5_0 ps_5_0)'
];
const patchWebGL = (proto) => {
    const orig = proto.getParameter;
    proto.getParameter = function (parameter) {
        if (parameter === 37445) return 'Google Inc. (NVIDIA)';
        if (parameter === 37446) return RENDERERS[Math.floor(Math.random() * RENDERERS.length)];
        return orig.call(this, parameter);
    };
};
patchWebGL(WebGLRenderingContext.prototype);
if (typeof WebGL2RenderingContext !== 'undefined') {
    patchWebGL(WebGL2RenderingContext.prototype);
}

// Audio noise
const AudioCtx = window.AudioContext || window.webkitAudioContext;
if (AudioCtx) {
    const origCreateAnalyser = AudioCtx.prototype.createAnalyser;
    AudioCtx.prototype.createAnalyser = function () {
        const analyser = origCreateAnalyser.call(this);
        const origGetFloat = analyser.getFloatFrequencyData.bind(analyser);
        analyser.getFloatFrequencyData = function (array) {
            origGetFloat(array);
            for (let i = 0; i < array.length; i += 10) {
                array[i] = array[i] + (Math.random() * 0.0001 - 0.00005);
            }
        };
        return analyser;
    };
}

// Hardware
Object.defineProperty(navigator, 'hardwareConcurrency', {get: () => [4, 8, 12, 16][Math.floor(Math.random() * 4)]});
Object.defineProperty(navigator, 'deviceMemory', {get: () => [4, 8, 16, 32][Math.floor(Math.random() * 4)]});

// Screen
const SCREENS = [
    {width: 1920, height: 1080, availWidth: 1920, availHeight: 1040, colorDepth: 24},
    {width: 2560, height: 1440, availWidth: 2560, availHeight: 1400, colorDepth: 24},
    {width: 1366, height: 768, availWidth: 1366, availHeight: 728, colorDepth: 24},
    {width: 1536, height: 864, availWidth: 1536, availHeight: 824, colorDepth: 24}
];
const selectedScreen = SCREENS[Math.floor(Math.random() * SCREENS.length)];
for (const prop of ['width', 'height', 'availWidth', 'availHeight', 'colorDepth']) {
    Object.defineProperty(screen, prop, {get: () => selectedScreen[prop]});
}
Object.defineProperty(screen, 'pixelDepth', {get: () => selectedScreen.colorDepth});

// Remove Playwright-specific properties
delete window.__playwright;
delete window.__pw_manual;
"""


def get_random_user_agent(rng: Optional[random.Random] = None) -> str:
    """Get a random user agent from the pool."""
    return (rng or random).choice(USER_AGENTS)


def get_random_viewport(rng: Optional[random.Random] = None) -> Dict[str, int]:
    return dict((rng or random).choice(VIEWPORTS))


def get_realistic_headers(rng: Optional[random.Random] = None) -> Dict[str, str]:
    """Browser-like request headers with randomized language and DNT."""
    rng = rng or random
    return {
        "Accept-Language": rng.choice(ACCEPT_LANGUAGES),
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8",
        "Accept-Encoding": "gzip, deflate, br",
        "Connection": "keep-alive",
        "Upgrade-Insecure-Requests": "1",
        "Sec-Fetch-Dest": "document",
        "Sec-Fetch-Mode": "navigate",
        "Sec-Fetch-Site": "none",
        "Sec-Fetch-User": "?1",
        "Cache-Control": "max-age=0",
        "DNT": "1" if rng.random() > 0.5 else "0",
    }


def get_launch_args(enabled: bool = True) -> List[str]:
    if not enabled:
        return ["--no-sandbox", "--disable-dev-shm-usage"]
    return list(LAUNCH_ARGS)


def apply_playwright(context_kwargs: dict, rng: Optional[random.Random] = None, enabled: bool = True):
    """
    Apply stealth settings to Playwright browser context options.

    Args:
        context_kwargs: Dict to update with stealth context options
        rng: Random source for user agent / viewport / header choice
        enabled: When False only locale and timezone are set
    """
    context_kwargs.update({
        "locale": "en-GB",
        "timezone_id": "Europe/London",
    })
    if not enabled:
        return

    context_kwargs.update({
        "user_agent": get_random_user_agent(rng),
        "viewport": get_random_viewport(rng),
        "extra_http_headers": get_realistic_headers(rng),
        "device_scale_factor": 1,
        "has_touch": False,
        "is_mobile": False,
    })


async def apply_playwright_with_script(context, enabled: bool = True):
    """
    Apply stealth init script to a Playwright context.

    Args:
        context: Playwright BrowserContext instance
    """
    if not enabled:
        return
    await context.add_init_script(_STEALTH_INIT_SCRIPT)
