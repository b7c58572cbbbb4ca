"""Shared record keys to avoid magic strings across the pipeline."""

from __future__ import annotations

# Terminal result envelope
K_SUCCESS = "success"
K_ARTICLE = "article"
K_ERROR = "error"
K_ERROR_LOCAL = "errorLocal"
K_REASON = "reason"
K_REWRITE = "rewrite"

# Article record
K_TITLE = "title"
K_CONTENT = "content"
K_EXCERPT = "excerpt"
K_IMAGE_URL = "imageUrl"
K_SOURCE_URL = "sourceUrl"
K_SOURCE_NAME = "sourceName"
K_SOURCE_NAME_LOCAL = "sourceNameLocal"
K_ATTRIBUTION = "attribution"
K_ORIGINAL_PUBLISH_DATE = "originalPublishDate"

# Registry JSON
K_DOMAIN = "domain"
K_DISPLAY_NAME_LOCAL = "displayNameLocal"
K_DISPLAY_NAME_FOREIGN = "displayNameForeign"
K_CITATION_PHRASES = "citationPhrases"
