"""
URL extraction from fetched CSS and SVG content.
Given raw text, produce the list of urls it references.
"""

import re
from urllib.parse import urldefrag, urljoin

from bs4 import BeautifulSoup

CSS = "CSS"
SVG = "SVG"

# url(...) values, skipping ones that open with a scheme-less colon (e.g. url(:foo))
CSS_URL_RE = re.compile(r"""url\((?!['"]?:)\s*['"]?([^'")]*?)['"]?\s*\)""", re.IGNORECASE)
CSS_IMPORT_RE = re.compile(r"""@import\s+(?:url\()?\s*['"]([^'"]+)['"]""", re.IGNORECASE)
CSS_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)


def resource_type(content_type):
    """Processing category of a resource: CSS, SVG or None."""
    if not content_type:
        return None
    ct = content_type.lower()
    if "text/css" in ct:
        return CSS
    if "image/svg" in ct:
        return SVG
    return None


def absolutize_url(url, base_url):
    return urljoin(base_url, url)


def to_unanchored_uri(url):
    return urldefrag(url)[0] if url else url


def extract_css_urls(css_text):
    """url() references and @import targets of a stylesheet, in document order."""
    if not css_text:
        return []
    css_text = CSS_COMMENT_RE.sub("", css_text)
    found = []
    for match in CSS_IMPORT_RE.finditer(css_text):
        found.append((match.start(), match.group(1)))
    for match in CSS_URL_RE.finditer(css_text):
        found.append((match.start(), match.group(1)))

    urls = []
    seen = set()
    for _, url in sorted(found):
        url = url.strip()
        if not url or url.startswith("#") or url in seen:
            continue
        seen.add(url)
        urls.append(url)
    return urls


def extract_svg_urls(svg_content):
    """
    Resources referenced from an SVG document: img src/srcset, image/use/link hrefs,
    object data, <style> blocks and style attributes. Local #anchors are dropped.
    """
    if isinstance(svg_content, bytes):
        svg_content = svg_content.decode("utf-8", errors="replace")
    soup = BeautifulSoup(svg_content or "", "html.parser")
    urls = []

    for img in soup.find_all("img", srcset=True):
        for candidate in img["srcset"].split(", "):
            parts = candidate.strip().split()
            if parts:
                urls.append(parts[0])

    for img in soup.find_all("img", src=True):
        urls.append(img["src"])

    for el in soup.find_all(["image", "use", "link"]):
        if el.name == "link" and "stylesheet" not in (el.get("rel") or []):
            continue
        href = el.get("href") or el.get("xlink:href")
        if href:
            urls.append(href)

    for obj in soup.find_all("object", data=True):
        urls.append(obj["data"])

    for style in soup.find_all("style"):
        if style.string:
            urls.extend(extract_css_urls(style.string))

    for el in soup.find_all(style=True):
        urls.extend(CSS_URL_RE.findall(el["style"]))

    return [to_unanchored_uri(u) for u in urls if u and not u.startswith("#")]


def extract_dependent_urls(rtype, content):
    if rtype == CSS:
        text = content.decode("utf-8", errors="replace") if isinstance(content, bytes) else content
        return extract_css_urls(text)
    if rtype == SVG:
        return extract_svg_urls(content)
    return None
