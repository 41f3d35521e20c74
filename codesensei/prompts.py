"""Prompt templates for the agent sagas."""

from __future__ import annotations

REQUIREMENT_SESSION_TITLE = "Requirement update"
CODE_SESSION_TITLE = "Code generation"

_REQUIREMENT_ROLE = "You are the requirement-document editor of CodeSensei."
_CODE_ROLE = "You are the code-generation assistant of CodeSensei."

_CODE_PRINCIPLES = """## Working principles
- Read the existing files first to understand the project structure
- Prefer modifying existing files over creating unnecessary new ones
- Keep the code style consistent
- Make sure the code runs

Briefly describe which files you changed."""


def build_requirement_prompt(user_input: str, current_requirement: str = "") -> str:
    """Prompt that creates or updates a requirement document.

    The agent must answer with the complete document and nothing else, since
    its reply is written to disk as-is.
    """
    if not current_requirement.strip():
        return f"""{_REQUIREMENT_ROLE}

## User request
{user_input}

## Task
Create a requirement document based on the user request.

## Output format
Output the complete requirement document in Markdown, including:
- Project description
- Functional requirements
- Tech stack
- Any other necessary sections

Output only the document content, without any other explanation."""

    return f"""{_REQUIREMENT_ROLE}

## User request
{user_input}

## Current requirement document
```markdown
{current_requirement}
```

## Task
Update the requirement document according to the user request. Keep the structure clear and use Markdown.

Output only the complete updated document, without any other explanation."""


def build_code_prompt(project_root: str, user_input: str, requirement: str = "") -> str:
    """Prompt that asks the agent to create or modify files under a project root."""
    if not requirement.strip():
        return f"""{_CODE_ROLE}

## Project path
{project_root}

## User request
{user_input}

## Task
Create or modify files in the project according to the user request.

{_CODE_PRINCIPLES}"""

    return f"""{_CODE_ROLE}

## Project path
{project_root}

## Requirement document
```markdown
{requirement}
```

## User request
{user_input}

## Task
Create or modify files in the project according to the requirement document and the user request.

{_CODE_PRINCIPLES}"""
