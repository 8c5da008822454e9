"""
Title → issue type classification for Analyzer issues that arrive untyped.
"""

from __future__ import annotations

from seofix.util.text import normalize_title

__all__ = ("OTHER_ISSUE_TYPE", "classify_issue_type", "element_path_for")

OTHER_ISSUE_TYPE = "other"

# First match wins; order matters where phrases overlap ("duplicate meta" before "meta description").
_TYPE_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    # Meta tags
    ("duplicate_meta_descriptions", ("duplicate meta",)),
    ("missing_meta_description", ("meta description",)),
    ("poor_title_tag", ("title tag",)),
    # Images
    ("missing_alt_text", ("alt text", "image alt")),
    ("unoptimized_images", ("unoptimized image", "image optimization")),
    ("missing_image_dimensions", ("image dimension", "width height")),
    ("images_missing_lazy_loading", ("lazy loading", "loading attribute")),
    # Schema & structured data
    ("missing_faq_schema", ("faq schema", "faq structured")),
    ("missing_breadcrumbs", ("breadcrumb",)),
    ("missing_schema", ("schema", "structured data", "json ld")),
    # Social
    ("missing_og_tags", ("open graph", "og:")),
    ("missing_twitter_cards", ("twitter card", "twitter:")),
    # Links
    ("broken_internal_links", ("broken link", "404", "dead link")),
    ("external_links_missing_attributes", ("external link", "nofollow", "noopener")),
    ("internal_linking", ("internal link",)),
    ("orphan_pages", ("orphan page", "no inbound links")),
    # Content
    ("thin_content", ("thin content", "insufficient content", "short content")),
    ("duplicate_content", ("duplicate content", "content duplication")),
    ("low_content_quality", ("content quality",)),
    ("poor_readability", ("readability",)),
    ("poor_content_structure", ("content structure",)),
    ("keyword_optimization", ("keyword",)),
    # Headings (after content so "content structure" is not read as a heading)
    ("heading_structure", ("h1", "heading", "hierarchy")),
    # Technical
    ("missing_viewport_meta", ("viewport",)),
    ("mobile_responsiveness", ("mobile", "responsive")),
    ("missing_canonical_url", ("canonical",)),
    ("missing_xml_sitemap", ("sitemap",)),
    ("robots_txt_issues", ("robots txt", "robots.txt")),
    ("unoptimized_permalinks", ("permalink", "url structure")),
    ("redirect_chains", ("redirect chain", "multiple redirects")),
)

_ELEMENT_PATHS: tuple[tuple[str, str], ...] = (
    ("title tag", "title"),
    ("meta description", 'meta[name="description"]'),
    ("h1", "h1"),
    ("viewport", 'meta[name="viewport"]'),
    ("alt text", "img"),
)


def classify_issue_type(title: str) -> str:
    """Map a free-form issue title to a tracking type key."""
    text = normalize_title(title)
    raw = title.lower()
    for issue_type, keywords in _TYPE_KEYWORDS:
        if any(k in text or k in raw for k in keywords):
            return issue_type
    return OTHER_ISSUE_TYPE


def element_path_for(title: str) -> str | None:
    text = normalize_title(title)
    for keyword, path in _ELEMENT_PATHS:
        if keyword in text:
            return path
    return None
