import structlog
from typing import Optional, List
from enum import Enum

import openai
import anthropic
import google.generativeai as genai

from ..exceptions import EnrichmentError

logger = structlog.get_logger(__name__)


class LLMProvider(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"


class LLMService:
    def __init__(
        self,
        openai_api_key: Optional[str] = None,
        anthropic_api_key: Optional[str] = None,
        google_api_key: Optional[str] = None,
        openai_model_name: str = "gpt-4o-mini",
        anthropic_model_name: str = "claude-3-haiku-20240307",
        google_model_name: str = "gemini-1.5-flash"
    ):
        self.openai_model_name = openai_model_name
        self.anthropic_model_name = anthropic_model_name
        self.google_model_name = google_model_name

        self.openai_client = None
        self.anthropic_client = None
        self.google_client = None

        if openai_api_key:
            try:
                self.openai_client = openai.AsyncOpenAI(api_key=openai_api_key)
                logger.info("OpenAI client initialized")
            except Exception as e:
                logger.warning("Failed to initialize OpenAI client", error=str(e))

        if anthropic_api_key:
            try:
                self.anthropic_client = anthropic.AsyncAnthropic(api_key=anthropic_api_key)
                logger.info("Anthropic client initialized")
            except Exception as e:
                logger.warning("Failed to initialize Anthropic client", error=str(e))

        if google_api_key:
            try:
                genai.configure(api_key=google_api_key)
                self.google_client = genai.GenerativeModel(self.google_model_name)
                logger.info("Google Gemini client initialized")
            except Exception as e:
                logger.warning("Failed to initialize Google Gemini client", error=str(e))

    async def generate_with_fallback(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.1,
        max_tokens: int = 1000,
        preferred_provider: Optional[LLMProvider] = None
    ) -> str:
        """
        Generate response with automatic fallback between providers.

        Fallback order (unless preferred_provider specified):
        1. OpenAI
        2. Google Gemini
        3. Anthropic Claude
        """

        if preferred_provider:
            try:
                return await self._generate_with_provider(
                    preferred_provider, system_prompt, user_prompt, temperature, max_tokens
                )
            except EnrichmentError as e:
                logger.warning("Preferred provider failed, trying fallbacks", provider=preferred_provider.value, error=str(e))

        providers_to_try = [LLMProvider.OPENAI, LLMProvider.GOOGLE, LLMProvider.ANTHROPIC]
        if preferred_provider:
            providers_to_try = [p for p in providers_to_try if p != preferred_provider]

        last_error: Optional[Exception] = None
        for provider in providers_to_try:
            if not self._is_provider_available(provider):
                continue
            try:
                return await self._generate_with_provider(
                    provider, system_prompt, user_prompt, temperature, max_tokens
                )
            except EnrichmentError as e:
                last_error = e
                logger.warning("Provider failed, trying next provider", provider=provider.value, error=str(e))

        if last_error is not None:
            raise EnrichmentError(f"All LLM providers failed: {last_error}") from last_error
        raise EnrichmentError("No LLM provider configured. Please check API keys.")

    async def _generate_with_provider(
        self,
        provider: LLMProvider,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int
    ) -> str:
        if provider == LLMProvider.OPENAI:
            return await self._generate_openai(system_prompt, user_prompt, temperature, max_tokens)
        elif provider == LLMProvider.ANTHROPIC:
            return await self._generate_anthropic(system_prompt, user_prompt, temperature, max_tokens)
        elif provider == LLMProvider.GOOGLE:
            return await self._generate_google(system_prompt, user_prompt, temperature, max_tokens)
        else:
            raise EnrichmentError(f"Unknown provider: {provider}")

    async def _generate_openai(self, system_prompt: str, user_prompt: str, temperature: float, max_tokens: int) -> str:
        if not self.openai_client:
            raise EnrichmentError("OpenAI client not available")

        try:
            response = await self.openai_client.chat.completions.create(
                model=self.openai_model_name,
                temperature=temperature,
                max_tokens=max_tokens,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt}
                ]
            )
        except openai.RateLimitError as e:
            raise EnrichmentError(f"OpenAI rate limit exceeded: {str(e)}") from e
        except openai.OpenAIError as e:
            raise EnrichmentError(f"OpenAI generation failed: {str(e)}") from e

        result = response.choices[0].message.content or ""
        logger.debug("OpenAI generation completed", model=self.openai_model_name, response_length=len(result))
        return result

    async def _generate_anthropic(self, system_prompt: str, user_prompt: str, temperature: float, max_tokens: int) -> str:
        if not self.anthropic_client:
            raise EnrichmentError("Anthropic client not available")

        try:
            response = await self.anthropic_client.messages.create(
                model=self.anthropic_model_name,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system_prompt,
                messages=[
                    {"role": "user", "content": user_prompt}
                ]
            )
        except anthropic.AnthropicError as e:
            raise EnrichmentError(f"Anthropic generation failed: {str(e)}") from e

        result = response.content[0].text
        logger.debug("Anthropic generation completed", model=self.anthropic_model_name, response_length=len(result))
        return result

    async def _generate_google(self, system_prompt: str, user_prompt: str, temperature: float, max_tokens: int) -> str:
        if not self.google_client:
            raise EnrichmentError("Google client not available")

        generation_config = genai.types.GenerationConfig(
            temperature=temperature,
            max_output_tokens=max_tokens
        )
        full_prompt = f"{system_prompt}\n\nUser: {user_prompt}"

        try:
            response = await self.google_client.generate_content_async(
                full_prompt,
                generation_config=generation_config
            )
            result = response.text
        except Exception as e:
            raise EnrichmentError(f"Google generation failed: {str(e)}") from e

        logger.debug("Google generation completed", response_length=len(result))
        return result

    def _is_provider_available(self, provider: LLMProvider) -> bool:
        if provider == LLMProvider.OPENAI:
            return self.openai_client is not None
        elif provider == LLMProvider.ANTHROPIC:
            return self.anthropic_client is not None
        elif provider == LLMProvider.GOOGLE:
            return self.google_client is not None
        return False

    def get_available_providers(self) -> List[LLMProvider]:
        return [p for p in LLMProvider if self._is_provider_available(p)]
