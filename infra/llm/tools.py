"""Tools the tutor model may call during generation."""

from typing import Any, Dict

from langchain_core.tools import StructuredTool
from pydantic import BaseModel, Field

from api.utils.logger import configure_logging

logger = configure_logging()

SEARCH_RESOURCES = "searchResources"


class SearchResourcesInput(BaseModel):
    query: str = Field(description="Search keywords for finding relevant learning resources")
    topK: int = Field(default=5, ge=1, le=20, description="Number of results to return (default: 5)")


def build_search_resources_tool(retriever) -> StructuredTool:
    """
    `searchResources`: resource-scope vector search formatted for the model.

    Failures are returned to the model as an error payload instead of raising, so one bad
    search does not end the reply.
    """

    async def search_resources(query: str, topK: int = 5) -> Dict[str, Any]:
        try:
            results = await retriever.search_resources(query, topK)
        except Exception as e:
            logger.warning("event=tool_search_resources_failed query=%r error=%s", query, e)
            return {
                "query": query,
                "error": "Failed to search learning resources",
                "totalResults": 0,
                "resources": [],
            }

        return {
            "query": query,
            "totalResults": len(results),
            "resources": [
                {
                    "rank": i + 1,
                    "relevanceScore": r.score,
                    "content": r.content or "No content available",
                    "url": r.metadata.get("url") or "No URL available",
                    "chunkIndex": r.metadata.get("chunkIndex") or 0,
                }
                for i, r in enumerate(results)
            ],
        }

    return StructuredTool.from_function(
        coroutine=search_resources,
        name=SEARCH_RESOURCES,
        description=(
            "Search for relevant learning resources and course material for a question. Use it when "
            "the user asks about a specific topic or concept, or needs additional learning resources."
        ),
        args_schema=SearchResourcesInput,
    )
