"""
Generic OpenAI client with structured outputs support.
Uses Jinja2 templates for prompts and Pydantic models for response schemas.
"""

import importlib.util
import sys
from pathlib import Path
from typing import Any, Dict
from jinja2 import Environment, FileSystemLoader, TemplateNotFound
from openai import OpenAI
from pydantic import BaseModel
from settings import CLASSIFIER_TIMEOUT, OPENAI_MODEL, OPENAI_TIMEOUT, require_setting


_client = None

# Share of the per-attempt timeout the SDK request may use
CLIENT_TIMEOUT_SHARE = 0.8

# Setup Jinja2 environment
PROMPTS_DIR = Path(__file__).parent / 'prompts'
jinja_env = Environment(
    loader=FileSystemLoader(PROMPTS_DIR),
    autoescape=False,
    trim_blocks=True,
    lstrip_blocks=True
)


def client_timeout(openai_timeout: float = OPENAI_TIMEOUT, attempt_timeout: float = CLASSIFIER_TIMEOUT) -> float:
    """
    Request timeout for the SDK client.

    Capped below the classifier's per-attempt timeout so a request abandoned
    by the retry policy times out on its own before the next attempt starts.
    """
    return min(float(openai_timeout), attempt_timeout * CLIENT_TIMEOUT_SHARE)


def get_client() -> OpenAI:
    """
    Get the shared OpenAI client, creating it on first use.

    Retries are owned by the caller's retry policy, so the SDK's own retries
    are disabled.

    Raises:
        ConfigurationError: If OPENAI_API_KEY is not configured
    """
    global _client
    if _client is None:
        _client = OpenAI(
            api_key=require_setting('OPENAI_API_KEY'),
            max_retries=0,
            timeout=client_timeout()
        )
    return _client


def load_pydantic_schema(task_name: str) -> type[BaseModel]:
    """
    Dynamically load Pydantic schema from prompts/{task_name}.py.

    Args:
        task_name: Name of the task (e.g., 'rumor_analysis')

    Returns:
        Pydantic BaseModel class named 'StructuredOutput'

    Raises:
        FileNotFoundError: If schema file doesn't exist
        ImportError: If StructuredOutput class not found in module
    """
    module_name = f"prompts.{task_name}"
    if module_name in sys.modules:
        return getattr(sys.modules[module_name], 'StructuredOutput')

    schema_file = PROMPTS_DIR / f"{task_name}.py"

    if not schema_file.exists():
        raise FileNotFoundError(f"Schema file not found: {schema_file}")

    # Load module dynamically
    spec = importlib.util.spec_from_file_location(module_name, schema_file)
    if spec is None or spec.loader is None:
        raise ImportError(f"Could not load module from {schema_file}")

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    spec.loader.exec_module(module)

    # Get StructuredOutput class
    if not hasattr(module, 'StructuredOutput'):
        raise ImportError(f"'StructuredOutput' class not found in {schema_file}")

    schema_class = getattr(module, 'StructuredOutput')

    if not issubclass(schema_class, BaseModel):
        raise TypeError("'StructuredOutput' must be a Pydantic BaseModel subclass")

    return schema_class


def render_prompts(task_name: str, data: Dict[str, Any]) -> tuple[str, str]:
    """
    Render system and user Jinja2 templates with provided data.

    Args:
        task_name: Name of the task (e.g., 'rumor_analysis')
        data: Dictionary with variables to render in templates

    Returns:
        Tuple of (system_prompt, user_prompt) rendered strings

    Raises:
        FileNotFoundError: If template files don't exist
    """
    system_template_name = f"{task_name}_system_prompt.md.jinja"
    user_template_name = f"{task_name}_user_prompt.md.jinja"

    try:
        system_prompt = jinja_env.get_template(system_template_name).render(**data)
    except TemplateNotFound:
        raise FileNotFoundError(f"System template not found: {PROMPTS_DIR / system_template_name}")

    try:
        user_prompt = jinja_env.get_template(user_template_name).render(**data)
    except TemplateNotFound:
        raise FileNotFoundError(f"User template not found: {PROMPTS_DIR / user_template_name}")

    return system_prompt, user_prompt


def openai_structured_output(
    task_name: str,
    data: Dict[str, Any],
    model: str = None,
    context_data: Dict[str, Any] = None
) -> BaseModel:
    """
    Generic wrapper for OpenAI structured outputs.

    Loads system/user Jinja templates and Pydantic schema based on task_name,
    renders the prompts with data, and calls OpenAI API with structured outputs.

    Directory structure expected:
        src/llm/prompts/{task_name}_system_prompt.md.jinja  - System prompt template
        src/llm/prompts/{task_name}_user_prompt.md.jinja    - User prompt template
        src/llm/prompts/{task_name}.py                      - Pydantic schema with 'StructuredOutput' class

    Args:
        task_name: Name of the task (e.g., 'rumor_analysis')
        data: Dictionary with variables for template rendering
        model: OpenAI model to use (defaults to OPENAI_MODEL from settings)
        context_data: Optional metadata stored with the call log (news_id, etc.)

    Returns:
        Pydantic model instance with parsed structured output

    Raises:
        ConfigurationError: If OPENAI_API_KEY is not configured
        ValueError: If the model returned no parseable output
        OpenAI API errors / pydantic.ValidationError: If the call or parsing fails

    Example:
        >>> data = {'title': 'Isco vuelve al Betis', 'description': '', 'source': 'BetisWeb'}
        >>> result = openai_structured_output('rumor_analysis', data)
        >>> print(result.probability)
    """
    from llm.logging import log_llm_api_call

    # Load schema and templates
    schema_class = load_pydantic_schema(task_name)
    system_prompt, user_prompt = render_prompts(task_name, data)

    # Use provided model or default from settings
    model_name = model or OPENAI_MODEL

    log_context = {'task_name': task_name, 'data_keys': list(data.keys())}
    log_context.update(context_data or {})

    with log_llm_api_call('structured_output', model_name, task_name, log_context) as call_log:
        call_log.set_prompts(system_prompt, user_prompt)

        completion = get_client().beta.chat.completions.parse(
            model=model_name,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt}
            ],
            response_format=schema_class
        )

        call_log.set_response(completion)

        parsed = completion.choices[0].message.parsed

        if parsed is None:
            raise ValueError("OpenAI API returned None for parsed output")

        call_log.set_parsed_output(parsed.model_dump(by_alias=True))

        return parsed
