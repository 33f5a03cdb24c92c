"""Natural-language assistant over the cotton catalog.

The assistant feeds a plain-text block of catalog products plus the user's
question to a text-generation service and returns the answer verbatim.
Missing OpenAI credentials disable the assistant only; catalog search keeps
working without it.
"""

import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence

from openai import OpenAI

from cotton_finder.catalog import CatalogRepository
from cotton_finder.config import DEFAULT_BRAND, LLM_MODEL, OPENAI_API_KEY
from cotton_finder.errors import ConfigurationError
from cotton_finder.logging_config import get_logger, log_scrape_event
from cotton_finder.models import Product

__all__ = [
    "TextGenerator",
    "OpenAITextGenerator",
    "create_text_generator",
    "build_context",
    "AssistantService",
]

logger = get_logger("assistant")

CONTEXT_PRODUCTS = 50
RECOMMENDED_PRODUCTS = 5
EXPLAINED_RESULTS = 10


class TextGenerator(Protocol):
    def generate(self, prompt: str) -> str:
        ...


class OpenAITextGenerator:
    """TextGenerator backed by the OpenAI Responses API."""

    def __init__(self, client: Optional[Any] = None, model: str = LLM_MODEL):
        self.client = client if client is not None else OpenAI()
        self.model = model

    def generate(self, prompt: str) -> str:
        log_scrape_event("llm_call", {
            "message": f"Calling {self.model}",
            "model": self.model,
            "prompt": prompt,
        }, logger_name="assistant")

        try:
            resp = self.client.responses.create(
                model=self.model,
                input=[{"role": "user", "content": [{"type": "input_text", "text": prompt}]}],
            )
        except Exception as e:
            log_scrape_event("llm_error", {
                "message": f"LLM call failed: {e}",
                "model": self.model,
                "error": str(e),
            }, level=logging.ERROR, logger_name="assistant")
            raise

        for item in resp.output:
            if hasattr(item, "content") and item.content is not None:
                raw = item.content[0].text
                log_scrape_event("llm_response", {
                    "message": f"{self.model} responded",
                    "model": self.model,
                    "raw_response": raw,
                }, logger_name="assistant")
                return str(raw)

        return ""


def create_text_generator(api_key: Optional[str] = None) -> OpenAITextGenerator:
    """Build the OpenAI generator.

    Raises:
        ConfigurationError: If no OpenAI API key is configured.
    """
    key = api_key or OPENAI_API_KEY
    if not key:
        raise ConfigurationError("OPENAI_API_KEY not set; assistant features are disabled")
    return OpenAITextGenerator(client=OpenAI(api_key=key))


def build_context(products: Sequence[Product]) -> str:
    """One line per product: name, price, cotton share, category and URL."""
    if not products:
        return "No products available."

    lines = [
        f"{idx}. {p.name} - ${p.price} ({p.cotton_percentage}% cotton) - {p.category or 'N/A'} - {p.url}"
        for idx, p in enumerate(products, start=1)
    ]
    return f"Available {DEFAULT_BRAND} products with 90%+ cotton:\n" + "\n".join(lines)


ASK_PROMPT = """You are a helpful assistant for a shopping app that helps users find high-quality cotton clothing (90%+ cotton) from {brand}.

Available products from our catalog:
{context}

User question: "{query}"

Please provide a helpful response that:
1. Answers the user's question about cotton clothing
2. Recommends relevant products from the catalog when appropriate
3. Includes product names, prices, and cotton percentages
4. Provides direct product URLs when recommending items
5. If no relevant products match, suggest alternative search terms

Keep your response concise and friendly."""

SEARCH_PROMPT = """User searched for: "{query}"

Search results found:
{context}

Please provide:
1. A brief explanation of why these results match
2. Suggestions for similar search terms if applicable
3. Any additional information about cotton content that might be relevant"""


class AssistantService:
    """Question answering and search explanations over the catalog.

    Args:
        repository: Catalog to draw product context from.
        generator: Text generator, or None when the assistant is disabled.
    """

    def __init__(self, repository: CatalogRepository, generator: Optional[TextGenerator] = None):
        self.repository = repository
        self.generator = generator

    @classmethod
    def from_config(cls, repository: CatalogRepository) -> "AssistantService":
        """Build with the OpenAI generator when credentials are available."""
        try:
            generator: Optional[TextGenerator] = create_text_generator()
        except ConfigurationError as e:
            logger.warning(str(e))
            generator = None
        return cls(repository, generator)

    @property
    def enabled(self) -> bool:
        return self.generator is not None

    def ask(self, user_query: str) -> Dict[str, Any]:
        """Answer a free-text question.

        Returns:
            ``{"answer": str, "products": [first 5 context products]}``

        Raises:
            ConfigurationError: If the assistant is disabled.
        """
        if self.generator is None:
            raise ConfigurationError("Assistant is not configured. Set OPENAI_API_KEY in .env")

        products = self.repository.all_products(limit=CONTEXT_PRODUCTS)
        prompt = ASK_PROMPT.format(
            brand=DEFAULT_BRAND, context=build_context(products), query=user_query
        )
        answer = self.generator.generate(prompt)
        return {"answer": answer, "products": products[:RECOMMENDED_PRODUCTS]}

    def enhanced_search(self, user_query: str) -> Dict[str, Any]:
        """Catalog search with a generated explanation when available.

        Returns:
            ``{"products": [...], "explanation": str | None}``
        """
        products: List[Product] = self.repository.find_cotton_products(search_text=user_query)
        if self.generator is None:
            return {"products": products, "explanation": None}

        prompt = SEARCH_PROMPT.format(
            query=user_query, context=build_context(products[:EXPLAINED_RESULTS])
        )
        try:
            explanation: Optional[str] = self.generator.generate(prompt)
        except Exception as e:
            logger.error(f"Search explanation failed, returning plain results: {e}")
            explanation = None
        return {"products": products, "explanation": explanation}
