#  Project Scaffolder - Code Generation Prompt & Parser
#
#  Builds the code-generation prompt and pulls the {"files": [...]} object
#  out of free-form model output. Any parse failure is reported as one
#  CodeParseError; the underlying cause is logged only.
#
#  Depends on: exceptions.py
#  Used by:    services/generation.py

import json
import logging
import re
from dataclasses import dataclass

from scaffolder.exceptions import CodeParseError

logger = logging.getLogger("scaffolder.parser")

PARSE_ERROR_MESSAGE = "Failed to parse generated code response"

# Greedy: first "{" to last "}" with a literal "files" key in between.
_FILES_BLOCK = re.compile(r'\{[\s\S]*"files"[\s\S]*\}')


@dataclass
class GeneratedFile:
    path: str
    content: str

    def to_dict(self) -> dict:
        return {"path": self.path, "content": self.content}


_PROMPT_TEMPLATE = """You are an expert software architect and developer. Generate a complete, production-ready project based on the following requirements.

## Project Description
{description}

## Technology Stack
{tech_stack}

## Requirements
1. Generate all necessary files with complete, working code
2. Include proper error handling and input validation
3. Follow best practices for the chosen technologies
4. Include necessary configuration files (package.json, tsconfig.json, etc.)
5. Add appropriate comments and documentation
6. Ensure the code is secure and follows OWASP guidelines
{additional}
## Output Format
Respond with a JSON object containing a "files" array. Each file should have:
- "path": The relative file path (e.g., "src/index.ts")
- "content": The complete file content as a string

Example:
{{
  "files": [
    {{ "path": "package.json", "content": "{{...}}" }},
    {{ "path": "src/index.ts", "content": "..." }}
  ]
}}

Generate the project now:"""


def build_code_generation_prompt(
    description: str,
    tech_stack: list[str],
    additional_instructions: str | None = None,
) -> str:
    additional = (
        f"\n## Additional Instructions\n{additional_instructions}\n"
        if additional_instructions else ""
    )
    return _PROMPT_TEMPLATE.format(
        description=description,
        tech_stack=", ".join(tech_stack),
        additional=additional,
    )


def _extract_files_payload(text: str) -> list:
    """Locate and decode the files array. Raises ValueError on any mismatch."""
    match = _FILES_BLOCK.search(text)
    if not match:
        raise ValueError("no JSON object with a \"files\" key found")
    data = json.loads(match.group(0))
    files = data.get("files") if isinstance(data, dict) else None
    if not isinstance(files, list):
        raise ValueError("\"files\" is not an array")
    return files


def parse_code_generation_response(text: str) -> list[GeneratedFile]:
    """Extract (path, content) pairs from a model response.

    Surrounding prose is ignored. `{"files": []}` yields an empty list.
    """
    try:
        files = _extract_files_payload(text)
        return [GeneratedFile(path=f["path"], content=f["content"]) for f in files]
    except (ValueError, TypeError, KeyError) as e:
        logger.warning("Failed to parse code generation response: %s", e)
        raise CodeParseError(PARSE_ERROR_MESSAGE) from None
