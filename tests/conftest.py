from typing import List, Optional, Tuple

import pytest

from newsgate.workflows.renderers import NavigationGuard, PageRenderer, RenderedPage
from newsgate.workflows.sources import SourceEntry, SourceRegistry


ARTICLE_BODY = (
    "Saudi markets closed higher on Tuesday as energy shares extended their gains "
    "for a third straight session, traders said. "
)

ARTICLE_HTML = f"""<html>
<head>
  <title>Document title | Reuters</title>
  <meta property="og:title" content="Markets extend rally">
  <meta property="og:image" content="/images/lead.jpg">
  <meta property="article:published_time" content="2024-05-01T10:00:00Z">
</head>
<body>
  <nav><p>Home | World | Business</p></nav>
  <article>
    <h1>Markets extend rally on energy gains</h1>
    <div class="entry-content">
      <p>{ARTICLE_BODY}</p>
      <p>The benchmark index rose 1.2 percent, led by the largest listed oil producer.</p>
    </div>
  </article>
  <script>window.tracking = "should never reach the article body";</script>
</body>
</html>
"""


class FakeRenderer(PageRenderer):
    """Returns canned HTML or raises a canned error; records every call."""

    name = "fake"

    def __init__(self, html: str = ARTICLE_HTML, *, error: Optional[Exception] = None, final_url: Optional[str] = None):
        self.html = html
        self.error = error
        self.final_url = final_url
        self.calls: List[Tuple[str, Optional[NavigationGuard]]] = []

    async def render(self, url: str, guard: Optional[NavigationGuard] = None) -> RenderedPage:
        self.calls.append((url, guard))
        if self.error is not None:
            raise self.error
        return RenderedPage(
            url=url,
            final_url=self.final_url or url,
            status=200,
            html=self.html,
            renderer=self.name,
        )


def first_phrase(entry: SourceEntry, source_url: str) -> str:
    return entry.citation_phrases[0]


@pytest.fixture
def small_registry() -> SourceRegistry:
    return SourceRegistry(
        [
            SourceEntry(
                domain="example-trusted.com",
                display_name_local="المصدر الموثوق",
                display_name_foreign="Example Trusted",
                citation_phrases=("وفق المصدر الموثوق", "كما أفاد المصدر الموثوق"),
            ),
            SourceEntry(
                domain="reuters.com",
                display_name_local="رويترز",
                display_name_foreign="Reuters",
                citation_phrases=("وفق رويترز", "كما نقلت رويترز", "بحسب وكالة رويترز"),
            ),
        ],
        first_phrase,
    )


async def public_resolver(hostname: str) -> List[str]:
    return ["93.184.216.34"]
