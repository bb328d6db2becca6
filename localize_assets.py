#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Localize every externally hosted asset of a single HTML page.
- Finds candidate URLs with pattern rules (no DOM), in:
  * <link href>, <script src>, <img src>, generic href/src/poster/content attrs
  * lazy-load attrs: data-src, data-bg, data-variant-image
  * srcset lists: srcset, data-srcset, data-bgset, <source srcset>
  * inline style="...url(...)..." attributes and <style> blocks
  * width-templated lazy images: data-src="..{width}.." + data-widths="[..]"
  * CDN URLs embedded in inline JSON, plain or with escaped slashes (\\/)
- Downloads each asset ONCE into assets/<css|js|images|fonts|assets>/,
  never overwriting an existing file (name_1.ext, name_2.ext, ...).
- Downloaded CSS is post-processed: url(...) and @import targets are fetched
  too (recursively) and rewritten to paths relative to the CSS file.
- Rewrites the HTML in place. Assets that fail to download keep their
  original remote reference.

Usage:
  localize-assets index.html --base https://www.example.com
"""

import argparse, os, posixpath, re, sys, urllib.parse
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Set, Tuple

import requests

DEFAULT_BASE = "https://www.kulturafilipino.com"
DEFAULT_CDN_PATH = "/cdn/"
DEFAULT_TIMEOUT = 20.0
DEFAULT_MAX_REDIRECTS = 5
DEFAULT_TEMPLATE_WIDTHS = (400, 800, 1400)
USER_AGENT = "Mozilla/5.0"

CSS_EXTS = {".css"}
JS_EXTS = {".js",".mjs",".cjs"}
IMAGE_EXTS = {".png",".jpg",".jpeg",".gif",".webp",".svg",".bmp",".ico",".avif"}
FONT_EXTS = {".woff",".woff2",".ttf",".otf",".eot"}
GENERIC_BUCKET = "assets"

QUOTES_RE = re.compile(r"^[\"']|[\"']$")
DATA_URI_RE = re.compile(r"^data:", re.IGNORECASE)
HTTP_URL_RE = re.compile(r"^https?://", re.IGNORECASE)
UNSAFE_NAME_RE = re.compile(r"[^A-Za-z0-9._-]")

TAG_ATTR_RES = [
    re.compile(r"<link[^>]*href=[\"']([^\"']+)[\"'][^>]*>", re.IGNORECASE),
    re.compile(r"<script[^>]*src=[\"']([^\"']+)[\"'][^>]*>", re.IGNORECASE),
    re.compile(r"<img[^>]*src=[\"']([^\"']+)[\"'][^>]*>", re.IGNORECASE),
]
SOURCE_SRCSET_RE = re.compile(r"<source[^>]*srcset=[\"']([^\"']+)[\"'][^>]*>", re.IGNORECASE)
STYLE_ATTR_URL_RE = re.compile(r"\sstyle=[\"'][^\"']*url\(([^)]+)\)[^\"']*[\"']", re.IGNORECASE)
STYLE_BLOCK_RE = re.compile(r"<style[^>]*>(.*?)</style>", re.IGNORECASE | re.DOTALL)
GENERIC_ATTR_RE = re.compile(r"(href|src|poster|content|data-src|data-bg|data-variant-image)=[\"']([^\"']+)[\"']", re.IGNORECASE)
SET_ATTR_RE = re.compile(r"(srcset|data-srcset|data-bgset)=[\"']([^\"']+)[\"']", re.IGNORECASE)
STYLE_ATTR_RE = re.compile(r"\sstyle=(\"[^\"]*\"|'[^']*')", re.IGNORECASE)
WIDTH_TEMPLATE_RE = re.compile(r"data-src=[\"']([^\"']*\{width\}[^\"']*)[\"']", re.IGNORECASE)
DATA_WIDTHS_RE = re.compile(r"data-widths=[\"']\[([^\"']+)\][\"']", re.IGNORECASE)

CSS_URL_RE = re.compile(r"url\(\s*([^\)]+)\s*\)", re.IGNORECASE)
CSS_IMPORT_RE = re.compile(r"@import\s+(?:url\()?\s*([\"']?[^\"'\)]+[\"']?)\s*\)?", re.IGNORECASE)

WIDTH_PLACEHOLDER = "{width}"

@dataclass
class Options:
    base: str
    assets_dir: Path
    cdn_path: str = DEFAULT_CDN_PATH
    timeout: float = DEFAULT_TIMEOUT
    max_redirects: int = DEFAULT_MAX_REDIRECTS
    resolve_relative: bool = False

    @property
    def host(self) -> str:
        return urllib.parse.urlsplit(self.base).netloc.lower()

    @property
    def html_base(self) -> Optional[str]:
        return self.base if self.resolve_relative else None

@dataclass
class FetchResult:
    body: bytes
    content_type: Optional[str]
    final_url: str

@dataclass
class AssetRecord:
    local_path: Path
    content_type: Optional[str]
    final_url: str

    @property
    def is_css(self) -> bool:
        return "text/css" in (self.content_type or "").lower()

@dataclass
class RunSummary:
    html_path: Path
    assets_dir: Path
    discovered: int
    localized: int
    failed: int

# ----------------- Errors -----------------

class FetchError(Exception):
    """Any failure to retrieve a single asset."""

class HttpStatusError(FetchError):
    def __init__(self, status: int, url: str):
        super().__init__(f"HTTP {status} {url}")
        self.status = status
        self.url = url

class TooManyRedirectsError(FetchError):
    pass

class FetchTimeoutError(FetchError):
    pass

class NetworkError(FetchError):
    pass

# ----------------- Utilities -----------------

def normalize_url(raw: Optional[str], base: Optional[str] = None) -> Optional[str]:
    """Turn a raw reference into an absolute http(s) URL, or None if it is not fetchable."""
    if not raw: return None
    s = QUOTES_RE.sub("", raw.strip())
    if not s or DATA_URI_RE.match(s): return None
    if HTTP_URL_RE.match(s): return s
    if s.startswith("//"): return "https:" + s
    if not base: return None
    try:
        joined = urllib.parse.urljoin(base, s)
        p = urllib.parse.urlsplit(joined)
    except ValueError:
        return None
    if p.scheme.lower() not in ("http", "https") or not p.netloc:
        return None
    return joined

def unescape_slashes(s: str) -> str:
    return s.replace("\\/", "/")

def escape_slashes(s: str) -> str:
    return s.replace("/", "\\/")

def ensure_dir(p: Path): p.parent.mkdir(parents=True, exist_ok=True)

def rel_href(from_path: Path, to_path: Path) -> str:
    rel = os.path.relpath(to_path.as_posix(), start=from_path.parent.as_posix())
    return rel.replace("\\","/")

def replace_all(text: str, mapping: Dict[str, str], bounded: bool = False) -> str:
    """Replace every key of mapping in one pass, longest keys first.

    Inserted values are never rescanned. With bounded=True a key only matches
    between reference delimiters (quotes, parens, whitespace, commas, '=').
    """
    if not mapping: return text
    alternation = "|".join(re.escape(k) for k in sorted(mapping, key=len, reverse=True))
    if bounded:
        alternation = r"(?<![^\s\"'(,=])(?:" + alternation + r")(?![^\s\"'),;\\])"
    return re.sub(alternation, lambda m: mapping[m.group(0)], text)

def parse_srcset_list(value: str) -> List[str]:
    urls = []
    for part in (value or "").split(","):
        token = part.strip().split()
        if token:
            urls.append(token[0])
    return urls

# ----------------- Reference extraction -----------------

def iter_css_references(css: str, base: Optional[str]) -> Iterator[Tuple[str, str]]:
    for rx in (CSS_URL_RE, CSS_IMPORT_RE):
        for m in rx.finditer(css):
            raw = QUOTES_RE.sub("", m.group(1).strip())
            full = normalize_url(raw, base)
            if full:
                yield raw, full

def extract_css_urls(css: str, base: Optional[str]) -> List[Tuple[str, str]]:
    uniq: Dict[str, str] = {}
    for raw, full in iter_css_references(css, base):
        uniq.setdefault(full, raw)
    return [(raw, full) for full, raw in uniq.items()]

def collect_html_urls(html: str, base: Optional[str] = None) -> List[str]:
    """Raw candidate references from the HTML, unique and in discovery order."""
    urls: Dict[str, bool] = {}
    def push(u: Optional[str]):
        if u and WIDTH_PLACEHOLDER not in u:
            urls[u] = True

    for rx in TAG_ATTR_RES:
        for m in rx.finditer(html):
            push(m.group(1))
    for m in SOURCE_SRCSET_RE.finditer(html):
        for u in parse_srcset_list(m.group(1)):
            push(u)
    for m in STYLE_ATTR_URL_RE.finditer(html):
        push(m.group(1))

    for m in STYLE_BLOCK_RE.finditer(html):
        for raw, _ in extract_css_urls(m.group(1), base):
            push(raw)

    for m in GENERIC_ATTR_RE.finditer(html):
        push(m.group(2))
    for m in SET_ATTR_RE.finditer(html):
        for u in parse_srcset_list(m.group(2)):
            push(u)

    # every url(...) of a style attribute, not only the first one
    for m in STYLE_ATTR_RE.finditer(html):
        for raw, _ in extract_css_urls(m.group(1)[1:-1], base):
            push(raw)
    return list(urls.keys())

def cdn_url_patterns(host: str, cdn_path: str) -> Tuple[re.Pattern, re.Pattern]:
    h = re.escape(host)
    esc_path = re.escape(escape_slashes(cdn_path))
    escaped = re.compile(r"[\"']((?:https?:\\/\\/|\\/\\/)" + h + esc_path + r"[^\"']+)[\"']", re.IGNORECASE)
    plain = re.compile(r"[\"']((?:https?://|//)" + h + re.escape(cdn_path) + r"[^\"']+)[\"']", re.IGNORECASE)
    return escaped, plain

def collect_embedded_urls(html: str, host: str, cdn_path: str = DEFAULT_CDN_PATH) -> List[str]:
    """CDN URLs quoted anywhere in the document, e.g. inside inline JSON."""
    found: Dict[str, bool] = {}
    for rx in cdn_url_patterns(host, cdn_path):
        for m in rx.finditer(html):
            # width templates are expanded by collect_width_templates
            if WIDTH_PLACEHOLDER not in m.group(1):
                found[m.group(1)] = True
    return list(found.keys())

def collect_width_templates(html: str, base: Optional[str] = None) -> Dict[str, str]:
    """Map each {width} template to the absolute URL of its widest variant."""
    choices: Dict[str, str] = {}
    for m in WIDTH_TEMPLATE_RE.finditer(html):
        tpl = m.group(1)
        tag_end = html.find(">", m.end())
        if tag_end == -1: tag_end = m.end() + 200
        widths = []
        wm = DATA_WIDTHS_RE.search(html[m.end():tag_end])
        if wm:
            for token in wm.group(1).split(","):
                num = re.match(r"\d+", token.strip())
                if num:
                    widths.append(int(num.group(0)))
        if not widths:
            widths = list(DEFAULT_TEMPLATE_WIDTHS)
        full = normalize_url(tpl.replace(WIDTH_PLACEHOLDER, str(max(widths))), base)
        if full:
            choices[tpl] = full
    return choices

# ----------------- Fetching -----------------

def request_headers(options: Options) -> Dict[str, str]:
    return {"User-Agent": USER_AGENT, "Referer": options.base}

def request_once(session: requests.Session, url: str, options: Options, **request_opts) -> Tuple[Optional[requests.Response], Optional[str]]:
    kwargs = {"headers": request_headers(options), "timeout": options.timeout, "allow_redirects": False}
    kwargs.update(request_opts)
    try:
        r = session.get(url, **kwargs)
    except requests.Timeout as e:
        raise FetchTimeoutError(f"Timeout {url}") from e
    except requests.RequestException as e:
        raise NetworkError(f"{e.__class__.__name__} {url}: {e}") from e
    status = r.status_code
    location = r.headers.get("Location")
    if 300 <= status < 400 and location:
        target = normalize_url(location, url)
        if not target:
            raise FetchError(f"Bad redirect {url} -> {location}")
        return None, target
    if status < 200 or status >= 300:
        raise HttpStatusError(status, url)
    return r, None

def fetch(session: requests.Session, url: str, options: Options, max_redirects: Optional[int] = None, **request_opts) -> FetchResult:
    limit = options.max_redirects if max_redirects is None else max_redirects
    current = url
    for _ in range(limit + 1):
        r, redirect = request_once(session, current, options, **request_opts)
        if redirect:
            current = redirect
            continue
        return FetchResult(body=r.content, content_type=r.headers.get("Content-Type"), final_url=current)
    raise TooManyRedirectsError(f"Too many redirects {url}")

# ----------------- Local paths -----------------

def type_by_ext(ext: str) -> str:
    e = ext.lower()
    if e in CSS_EXTS: return "css"
    if e in JS_EXTS: return "js"
    if e in IMAGE_EXTS: return "images"
    if e in FONT_EXTS: return "fonts"
    return GENERIC_BUCKET

def type_from_content_type(ct: Optional[str]) -> str:
    if not ct: return GENERIC_BUCKET
    c = ct.lower()
    if "text/css" in c: return "css"
    if "javascript" in c: return "js"
    if "image/" in c: return "images"
    if "font/" in c or "application/font" in c or "woff" in c: return "fonts"
    return GENERIC_BUCKET

def sanitize_filename(name: str) -> str:
    name = re.sub(r"[?#].*$", "", name).rstrip("/")
    return UNSAFE_NAME_RE.sub("_", name)

def ensure_unique(p: Path) -> Path:
    """First of p, p_1, p_2, ... (suffix before the extension) that does not exist."""
    if not p.exists(): return p
    stem, ext = os.path.splitext(p.name)
    i = 1
    while True:
        candidate = p.with_name(f"{stem}_{i}{ext}")
        if not candidate.exists():
            return candidate
        i += 1

def url_path_name(url: str) -> Tuple[str, str]:
    path = urllib.parse.urlsplit(url).path.rstrip("/")
    name = posixpath.basename(path)
    return name, posixpath.splitext(name)[1]

def unique_path_in(assets_dir: Path, bucket: str, filename: str) -> Path:
    d = assets_dir / bucket
    d.mkdir(parents=True, exist_ok=True)
    return ensure_unique(d / filename)

def decide_local_path(url: str, assets_dir: Path) -> Path:
    name, ext = url_path_name(url)
    filename = sanitize_filename(name) or "file"
    return unique_path_in(assets_dir, type_by_ext(ext), filename)

# ----------------- Localization -----------------

def download_one(session: requests.Session, url: str, options: Options) -> AssetRecord:
    res = fetch(session, url, options)
    name, ext = url_path_name(res.final_url)
    ct_type = type_from_content_type(res.content_type)
    # content-type only refines the generic bucket; a known extension wins
    if type_by_ext(ext) == GENERIC_BUCKET and ct_type != GENERIC_BUCKET:
        local_path = unique_path_in(options.assets_dir, ct_type, sanitize_filename(name) or "file")
    else:
        local_path = decide_local_path(res.final_url, options.assets_dir)
    ensure_dir(local_path)
    with open(local_path, "wb") as f: f.write(res.body)
    return AssetRecord(local_path=local_path, content_type=res.content_type, final_url=res.final_url)

def localize_asset(session: requests.Session, url: str, options: Options,
                   asset_map: Dict[str, AssetRecord], failed: Set[str]) -> Optional[AssetRecord]:
    """Download url once per run; CSS is post-processed. Failures are reported and swallowed."""
    if url in asset_map: return asset_map[url]
    if url in failed: return None
    try:
        record = download_one(session, url, options)
    except (FetchError, OSError, ValueError) as e:
        failed.add(url)
        print(f"[WARN] Failed {url}: {e}", file=sys.stderr)
        return None
    asset_map[url] = record
    if record.is_css:
        try:
            process_css_file(session, record, options, asset_map, failed)
        except (OSError, ValueError) as e:
            print(f"[WARN] Failed to rewrite {record.local_path}: {e}", file=sys.stderr)
    return record

def process_css_file(session: requests.Session, record: AssetRecord, options: Options,
                     asset_map: Dict[str, AssetRecord], failed: Set[str]):
    css_path = record.local_path
    text = css_path.read_text(encoding="utf-8", errors="surrogateescape")
    for _, full in extract_css_urls(text, record.final_url):
        localize_asset(session, full, options, asset_map, failed)

    replacements: Dict[str, str] = {}
    for raw, full in iter_css_references(text, record.final_url):
        nested = asset_map.get(full)
        if nested:
            replacements.setdefault(raw, rel_href(css_path, nested.local_path))
    new_text = replace_all(text, replacements, bounded=True)
    if new_text != text:
        css_path.write_text(new_text, encoding="utf-8", errors="surrogateescape")

# ----------------- Document rewriting -----------------

def background_cleanup_re(host: str, cdn_path: str = DEFAULT_CDN_PATH) -> re.Pattern:
    return re.compile(r"background-image:\s*url\([\"']?(?:https?://|//)" + re.escape(host)
                      + re.escape(cdn_path) + r"[^)]+\);\s*", re.IGNORECASE)

def with_escaped_forms(mapping: Dict[str, str]) -> Dict[str, str]:
    out = dict(mapping)
    for key, local in mapping.items():
        out.setdefault(escape_slashes(key), local)
    return out

def rewrite_document(html: str, url_map: Dict[str, str], raw_map: Dict[str, str],
                     template_map: Dict[str, str], cleanup_re: Optional[re.Pattern] = None) -> str:
    """Substitute localized paths into the HTML: absolute URLs, then raw spellings, then {width} templates."""
    updated = replace_all(html, with_escaped_forms(url_map))
    updated = replace_all(updated, with_escaped_forms(raw_map), bounded=True)
    updated = replace_all(updated, template_map)
    if cleanup_re is not None:
        updated = cleanup_re.sub("", updated)
    return updated

def localize_document(html_path: Path, options: Options, session: Optional[requests.Session] = None) -> RunSummary:
    """Download every asset of html_path and rewrite the file in place.

    Raises OSError/UnicodeDecodeError when the HTML itself cannot be read.
    """
    html = html_path.read_text(encoding="utf-8")
    session = session or requests.Session()
    base = options.html_base

    raw_refs = collect_html_urls(html, base)
    templates = collect_width_templates(html, base)
    embedded = collect_embedded_urls(html, options.host, options.cdn_path)

    discovered: List[str] = list(templates.values())
    for raw in raw_refs:
        full = normalize_url(raw, base)
        if full: discovered.append(full)
    for raw in embedded:
        full = normalize_url(unescape_slashes(raw), base)
        if full:
            discovered.append(full)
            raw_refs.append(raw)
    unique = list(dict.fromkeys(discovered))

    asset_map: Dict[str, AssetRecord] = {}
    failed: Set[str] = set()
    for url in unique:
        localize_asset(session, url, options, asset_map, failed)

    url_map = {u: rel_href(html_path, rec.local_path) for u, rec in asset_map.items()}
    raw_map: Dict[str, str] = {}
    for raw in raw_refs:
        full = normalize_url(unescape_slashes(raw), base)
        if full and full in url_map:
            raw_map[raw] = url_map[full]
    template_map = {tpl: url_map[full] for tpl, full in templates.items() if full in url_map}

    updated = rewrite_document(html, url_map, raw_map, template_map,
                               background_cleanup_re(options.host, options.cdn_path))
    ensure_dir(html_path)
    html_path.write_text(updated, encoding="utf-8")
    return RunSummary(html_path=html_path, assets_dir=options.assets_dir,
                      discovered=len(unique), localized=len(asset_map), failed=len(failed))

# ----------------- Orchestrator -----------------

def main(argv: Optional[List[str]] = None):
    ap = argparse.ArgumentParser(description="Download the external assets of an HTML page and rewrite it to use local copies.")
    ap.add_argument("html", nargs="?", default="index.html", help="HTML file to rewrite in place (default: index.html)")
    ap.add_argument("--base", default=DEFAULT_BASE, help=f"Base site, used as Referer and CDN host (default: {DEFAULT_BASE})")
    ap.add_argument("--assets", default="assets", help="Output folder for downloaded assets (default: ./assets)")
    ap.add_argument("--cdn-path", default=DEFAULT_CDN_PATH, help="Path prefix of the site's CDN (default: /cdn/)")
    ap.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT, help="HTTP timeout (seconds)")
    ap.add_argument("--max-redirects", type=int, default=DEFAULT_MAX_REDIRECTS, help="Redirects followed per asset")
    ap.add_argument("--resolve-relative", action="store_true", help="Resolve relative HTML references against --base")
    args = ap.parse_args(argv)

    cwd = Path.cwd()
    html_path = Path(args.html)
    if not html_path.is_absolute(): html_path = cwd / html_path
    assets_dir = Path(args.assets)
    if not assets_dir.is_absolute(): assets_dir = cwd / assets_dir

    options = Options(
        base=args.base,
        assets_dir=assets_dir,
        cdn_path=args.cdn_path,
        timeout=float(args.timeout),
        max_redirects=max(0, int(args.max_redirects)),
        resolve_relative=bool(args.resolve_relative),
    )

    try:
        summary = localize_document(html_path, options)
    except (OSError, UnicodeDecodeError) as e:
        print(str(e), file=sys.stderr); sys.exit(1)

    print(f"Completed. Saved assets to {os.path.relpath(assets_dir, cwd)}")
    print(f"{summary.localized} assets localized, {summary.failed} failed ({summary.discovered} referenced by the page)")

if __name__ == "__main__":
    main()
