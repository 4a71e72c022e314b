"""LLM factory for creating Ollama LLM instances."""

from typing import Optional

from langchain_ollama import OllamaLLM

from aeo_audit.config.settings import Settings, settings as default_settings
from aeo_audit.utils.exceptions import DiagnosticError
from aeo_audit.utils.logging import get_logger

logger = get_logger(__name__)


def create_llm(
    model_name: str,
    temperature: float = 0.2,
    timeout: float = 30,
    config: Optional[Settings] = None,
) -> OllamaLLM:
    """
    Create an Ollama LLM instance.

    Args:
        model_name: Name of the model (e.g., "llama3:8b")
        temperature: Temperature for generation
        timeout: Request timeout in seconds
        config: Settings providing the Ollama base URL

    Returns:
        OllamaLLM instance

    Raises:
        DiagnosticError: If the client cannot be constructed
    """
    config = config or default_settings
    try:
        llm = OllamaLLM(
            model=model_name,
            base_url=config.ollama_base_url,
            temperature=temperature,
            num_predict=120,
            client_kwargs={"timeout": timeout},
        )
        logger.info("LLM created", model=model_name, base_url=config.ollama_base_url)
        return llm
    except Exception as e:
        logger.error("Failed to create LLM", model=model_name, error=str(e))
        raise DiagnosticError(f"Failed to create LLM {model_name}: {e}") from e
