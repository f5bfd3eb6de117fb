"""Classify potentially irreversible commands found in agent output.

Agent responses mix prose with shell transcripts, so scanning is done line by
line: descriptive lines (comments, bullets, quotes, numbered lists) are
skipped, and lines mentioning config files only count when they start like a
command. Each surviving line is matched against an ordered pattern table.
"""

import re
from dataclasses import dataclass
from enum import StrEnum


class Category(StrEnum):
    VERSION_CONTROL = "git"
    CODE_HOSTING = "github"
    PACKAGE_REGISTRY = "npm"
    DEPLOYMENT = "deploy"


class Severity(StrEnum):
    NORMAL = "normal"
    HIGH = "high"


@dataclass(frozen=True)
class DetectedAction:
    category: Category
    action: str
    command: str
    severity: Severity
    details: str

    @property
    def is_high_severity(self) -> bool:
        return self.severity == Severity.HIGH


def _compile(*patterns: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


# Order matters: the first category with a matching pattern wins.
CATEGORY_PATTERNS: tuple[tuple[Category, tuple[re.Pattern[str], ...]], ...] = (
    (
        Category.VERSION_CONTROL,
        _compile(
            r"git\s+push(?:\s|$)",
            r"git\s+push\s+.*--force",
            r"git\s+merge(?:\s|$)",
            r"git\s+branch\s+-[dD].*origin",
            r"git\s+push\s+.*:.*(?:main|master)",
        ),
    ),
    (
        Category.CODE_HOSTING,
        _compile(
            r"gh\s+pr\s+merge",
            r"gh\s+pr\s+create",
            r"gh\s+release",
        ),
    ),
    (
        Category.PACKAGE_REGISTRY,
        _compile(
            r"npm\s+publish",
            r"yarn\s+publish",
            r"pnpm\s+publish",
        ),
    ),
    (
        Category.DEPLOYMENT,
        _compile(
            r"^deploy\s+",
            r"npm\s+run\s+deploy",
            r"yarn\s+deploy",
            r"pnpm\s+deploy",
            r"\bshipit\b",
            r"kubectl\s+apply",
            r"docker\s+push",
            r"terraform\s+apply",
            r"vercel\s+(?:deploy|--prod)",
            r"netlify\s+deploy",
            r"firebase\s+deploy",
            r"fly\s+deploy",
            r"railway\s+up",
        ),
    ),
)

# Most specific sub-pattern first; the first match names the action.
ACTION_LABELS: dict[Category, tuple[tuple[re.Pattern[str], str], ...]] = {
    Category.VERSION_CONTROL: (
        (re.compile(r"push.*--force", re.I), "Force push (destructive)"),
        (re.compile(r"branch.*-[dD]", re.I), "Delete remote branch"),
        (re.compile(r"push", re.I), "Push to remote repository"),
        (re.compile(r"merge", re.I), "Merge branches"),
    ),
    Category.CODE_HOSTING: (
        (re.compile(r"pr.*merge", re.I), "Merge pull request"),
        (re.compile(r"pr.*create", re.I), "Create pull request"),
        (re.compile(r"release", re.I), "Create GitHub release"),
    ),
    Category.PACKAGE_REGISTRY: ((re.compile(r"publish", re.I), "Publish package to npm"),),
    Category.DEPLOYMENT: (
        (re.compile(r"kubectl.*apply", re.I), "Apply Kubernetes configuration"),
        (re.compile(r"docker.*push", re.I), "Push Docker image"),
        (re.compile(r"terraform.*apply", re.I), "Apply Terraform changes"),
        (re.compile(r"vercel", re.I), "Deploy to Vercel"),
        (re.compile(r"netlify", re.I), "Deploy to Netlify"),
        (re.compile(r"firebase", re.I), "Deploy to Firebase"),
        (re.compile(r"fly", re.I), "Deploy to Fly.io"),
        (re.compile(r"railway", re.I), "Deploy to Railway"),
        (re.compile(r"deploy", re.I), "Deploy to environment"),
    ),
}

DEFAULT_ACTION = "Execute sensitive command"

HIGH_SEVERITY_PATTERNS = _compile(
    r"--force",
    r"--hard",
    r"(?:^|[\s:/])(?:main|master)(?=\s|$)",
    r"npm\s+publish",
    r"terraform\s+apply",
)

COMMAND_PREFIXES = _compile(
    r"^git\s+",
    r"^gh\s+",
    r"^npm\s+",
    r"^yarn\s+",
    r"^pnpm\s+",
    r"^kubectl\s+",
    r"^docker\s+",
    r"^terraform\s+",
    r"^deploy\s+",
    r"^\$\s*",
    r"^>\s*",
)

CONFIG_EXTENSIONS = (".yml", ".yaml", ".json")
PROSE_PREFIXES = ("#", "//", "*", "-", ">")
NUMBERED_ITEM = re.compile(r"^\d+\.")
SHELL_PROMPT = re.compile(r"^\$\s*")

BRANCH_RE = re.compile(r"origin\s+(\S+)")
FORCE_RE = re.compile(r"--force", re.I)
TARGET_RE = re.compile(r"(?:--target|--env|-e)\s+(\S+)", re.I)


def looks_like_command(line: str) -> bool:
    lower = line.lower()
    return any(p.search(lower) for p in COMMAND_PREFIXES)


def is_descriptive(line: str) -> bool:
    """True for lines that describe rather than execute (comments, markdown lists, quotes)."""
    if line.startswith(PROSE_PREFIXES):
        return True
    if NUMBERED_ITEM.match(line):
        return True
    if any(ext in line for ext in CONFIG_EXTENSIONS):
        return not looks_like_command(line)
    return False


def action_label(category: Category, command: str) -> str:
    for pattern, label in ACTION_LABELS[category]:
        if pattern.search(command):
            return label
    return DEFAULT_ACTION


def severity_of(command: str) -> Severity:
    if any(p.search(command) for p in HIGH_SEVERITY_PATTERNS):
        return Severity.HIGH
    return Severity.NORMAL


def extract_details(command: str) -> str:
    parts: list[str] = []

    if branch := BRANCH_RE.search(command):
        parts.append(f"Branch: {branch.group(1)}")

    if FORCE_RE.search(command):
        parts.append("Force flag enabled")

    if target := TARGET_RE.search(command):
        parts.append(f"Target: {target.group(1)}")

    return ", ".join(parts) if parts else command


class ActionDetector:
    def detect(self, command: str) -> DetectedAction | None:
        for category, patterns in CATEGORY_PATTERNS:
            if any(p.search(command) for p in patterns):
                return DetectedAction(
                    category=category,
                    action=action_label(category, command),
                    command=command,
                    severity=severity_of(command),
                    details=extract_details(command),
                )
        return None

    def detect_in_response(self, response: str) -> list[DetectedAction]:
        """Scan a full response; at most one entry per (category, action)."""
        detections: list[DetectedAction] = []
        seen: set[tuple[Category, str]] = set()

        for raw in response.split("\n"):
            line = raw.strip()
            if not line or is_descriptive(line):
                continue

            detection = self.detect(SHELL_PROMPT.sub("", line, count=1))
            if detection is None:
                continue

            key = (detection.category, detection.action)
            if key in seen:
                continue
            seen.add(key)
            detections.append(detection)

        return detections
