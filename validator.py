import logging
import os
import re
from typing import Dict, List

from pydantic import ValidationError

from ai_client import complete, extract_json, strip_code_fences
from file_generator import NavigationPolicy
from models import PlannedFile, ValidationIssue, ValidationResult

logger = logging.getLogger("website-validator")

TRUNCATION_WORDS = ("truncated", "incomplete", "cut off")

REVIEW_PROMPT = """You are a code validator for a static website generator.
Review the following generated files and identify any issues.

ISSUES TO CHECK:
1. Markdown code fences (backticks with language names) - these must be removed
2. Syntax errors (missing brackets, quotes, etc.)
3. Missing core functionality (data loading, search, filters, rendering)
4. Broken references (missing IDs, wrong file paths, etc.)
5. Invalid HTML/CSS/JS structure
6. Navigation links to non-existent pages - the navbar may ONLY link to: {pages}
7. Card alignment issues - cards must use a proper grid with equal heights and spacing
8. Layout breaking - cards overflowing or not aligned in the grid

Return ONLY a JSON array of issues in this format:
[
  {{
    "fileName": "app.js",
    "issue": "File wrapped in markdown code fences",
    "severity": "error",
    "fix": "Remove the opening and closing backticks, keep only the pure code"
  }}
]

If no issues are found, return an empty array: [].

Files to validate:{files}

Return ONLY the JSON array, no markdown, no explanation."""

FIX_PROMPT = """The file "{file_name}" has an issue: {issue}

Fix instruction: {fix}

{truncated_note}Current file content (may be incomplete):
```
{content}
```

{truncated_tail}Return ONLY the corrected COMPLETE file content with NO markdown wrappers, NO code fences, NO explanations.
Just the pure code that should be saved directly to the file."""

TRUNCATED_NOTE = ("CRITICAL: The file is TRUNCATED/INCOMPLETE. You MUST complete the entire file from start to finish. "
                  "Do NOT just append to the existing content - regenerate the COMPLETE file.\n\n")
TRUNCATED_TAIL = ("IMPORTANT: Return the COMPLETE, FULL file content. Ensure all HTML tags are properly closed, "
                  "all attributes are complete, and the file ends properly (e.g., </html> tag).\n\n")


def is_truncation(issue: str) -> bool:
    text = (issue or "").lower()
    return any(w in text for w in TRUNCATION_WORDS)


def structure_warnings(file_name: str, code: str) -> List[str]:
    """Cheap shape check for regenerated HTML. Only ever reported, never enforced."""
    if not file_name.endswith(".html"):
        return []
    warnings = []
    count = lambda pattern: len(re.findall(pattern, code, flags=re.I))
    if count(r"<html\b") != count(r"</html>") or count(r"<body\b") != count(r"</body>"):
        warnings.append(f'Fixed "{file_name}" may still be incomplete (HTML tags mismatch)')
    tail = code.rstrip().lower()
    if not (tail.endswith("</html>") or tail.endswith("</body>")):
        warnings.append(f'Fixed "{file_name}" may be truncated (does not end with </html> or </body>)')
    return warnings


def _read_files(project_dir: str, files: List[PlannedFile]) -> Dict[str, str]:
    contents = {}
    for f in files:
        path = os.path.join(project_dir, f.file_name)
        if os.path.exists(path):
            with open(path, "r", encoding="utf-8") as fh:
                contents[f.file_name] = fh.read()
    return contents


def _parse_issues(text: str, log: logging.Logger) -> List[ValidationIssue]:
    raw = extract_json(text, kind="array")
    if not isinstance(raw, list):
        raise ValueError("Invalid validation response format")
    issues = []
    for entry in raw:
        try:
            issues.append(ValidationIssue.model_validate(entry))
        except ValidationError:
            log.info("Ignoring malformed validation entry: %r", entry)
    return issues


def validate_and_fix_website(project_dir: str, files: List[PlannedFile], provider: str = "openrouter",
                             log: logging.Logger = logger) -> ValidationResult:
    """Review all generated files once and regenerate every file with an error-level issue.

    Best effort: any failure along the way is logged and reported as "no issues".
    """
    log.info("Validating %d files...", len(files))
    try:
        contents = _read_files(project_dir, files)
        listing = "\n\n".join(
            f"\n=== {f.file_name} ===\n{contents.get(f.file_name, '(file not found)')}" for f in files
        )
        page_list = [f.file_name for f in files if f.file_name.endswith(".html")]
        pages = ", ".join(page_list)
        text = complete("validate", REVIEW_PROMPT.format(pages=pages, files=listing), provider=provider, temperature=0.2, log=log)
        issues = _parse_issues(text, log)
        log.info("Found %d issues", len(issues))

        planned = {f.file_name for f in files}
        fixed: List[str] = []
        for issue in issues:
            if issue.severity != "error":
                log.info('Warning in "%s" (not auto-fixed): %s', issue.file_name, issue.issue)
                continue
            if issue.file_name not in planned:
                log.info('Skipping issue for unplanned file "%s"', issue.file_name)
                continue

            log.info('Fixing error in "%s": %s', issue.file_name, issue.issue)
            truncated = is_truncation(issue.issue)
            prompt = FIX_PROMPT.format(
                file_name=issue.file_name,
                issue=issue.issue,
                fix=issue.fix,
                truncated_note=TRUNCATED_NOTE if truncated else "",
                content=contents.get(issue.file_name, ""),
                truncated_tail=TRUNCATED_TAIL if truncated else "",
            )
            code = strip_code_fences(complete("fix", prompt, provider=provider, temperature=0.3, log=log))
            if issue.file_name.endswith(".html"):
                code = NavigationPolicy(page_list)(code, "", log)
            for warning in structure_warnings(issue.file_name, code):
                log.warning(warning)

            with open(os.path.join(project_dir, issue.file_name), "w", encoding="utf-8") as fh:
                fh.write(code)
            contents[issue.file_name] = code
            if issue.file_name not in fixed:
                fixed.append(issue.file_name)
            log.info('Fixed "%s" (%d chars)', issue.file_name, len(code))

        return ValidationResult(has_issues=bool(issues), issues=issues, fixed_files=fixed)
    except Exception:
        log.exception("Validation failed; continuing without fixes")
        return ValidationResult()
