import re
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from foreman.session.state import SessionState

# Common English words that should never be interpreted as repo names
RESERVED_WORDS = frozenset(
    {
        "a", "an", "the", "and", "or", "but", "if", "then", "else", "for", "to", "from",
        "with", "in", "on", "at", "by", "as", "is", "it", "be", "are", "was", "were",
        "will", "would", "could", "should", "can", "may", "might", "must", "have", "has",
        "do", "does", "did", "this", "that", "these", "those", "my", "your", "our", "their",
        "new", "old", "all", "some", "any", "no", "not", "deploy", "push", "pull", "merge",
        "create", "update", "delete", "add", "remove", "get", "set", "run", "start", "stop",
        "called", "named", "use", "using", "like", "make", "please", "help", "want", "need",
    }
)  # fmt: skip

CREATE_REPO_RE = re.compile(
    r"create\s+(?:a\s+)?(?:new\s+)?(?:private\s+)?(?:public\s+)?(?:github\s+)?repo(?:sitory)?\s+"
    r"(?:called|named)\s+[\"']?(\S+?)[\"']?(?:\s|$)"
)
GITHUB_URL_RE = re.compile(r"(?:https?://)?github\.com/([a-z0-9_.-]+)/([a-z0-9_.-]+?)(?:\.git)?(?:[/\s]|$)")
ORG_REPO_RE = re.compile(
    r"(?:go\s+to|switch\s+to|use)\s+(?:the\s+)?org(?:anization)?\s+[\"']?(\S+?)[\"']?\s*[,\s]+\s*"
    r"repo(?:sitory)?\s+[\"']?(\S+?)[\"']?(?:\s|$)"
)
SWITCH_REPO_RE = re.compile(r"(?:go\s+to|switch\s+to|use|in)\s+(?:the\s+)?repo(?:sitory)?\s+[\"']?(\S+?)[\"']?(?:\s|$)")
BRANCH_RE = re.compile(r"(?:on|switch\s+to|checkout|use)\s+(?:the\s+)?branch\s+[\"']?(\S+?)[\"']?(?:\s|$)")
SIMPLE_REPO_RE = re.compile(r"(?:the|in)\s+[\"']?(\w+)[\"']?\s+repo(?:sitory)?")
SAME_REPO_PHRASES = ("in the same repo", "same repository")

TASK_STRIP_PATTERNS = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"(?:go\s+to|switch\s+to|use)\s+(?:the\s+)?org(?:anization)?\s+\S+\s*[,\s]+\s*repo(?:sitory)?\s+\S+\s*",
        r"(?:go\s+to|switch\s+to|use|in)\s+(?:the\s+)?(?:repo(?:sitory)?)\s+\S+\s*",
        r"(?:on|switch\s+to|checkout|use)\s+(?:the\s+)?branch\s+\S+\s*",
        r"in\s+the\s+same\s+repo(?:sitory)?\s*",
        r"(?:the|in)\s+\S+\s+repo(?:sitory)?\s*",
    )
)
LEADING_CONJUNCTION_RE = re.compile(r"^(?:and|then|also|,)\s*", re.IGNORECASE)


class ContextAction(StrEnum):
    SWITCH = "switch"
    CREATE = "create"
    USE_EXISTING = "use_existing"


@dataclass
class RepoContext:
    action: ContextAction
    org: str | None = None
    repo: str | None = None
    branch: str | None = None


def is_valid_repo_name(name: str) -> bool:
    if not name or len(name) < 2:
        return False
    return name.lower() not in RESERVED_WORDS


def _split_repo(name: str, action: ContextAction) -> RepoContext | None:
    if "/" in name:
        org, _, repo = name.partition("/")
        if is_valid_repo_name(org) and is_valid_repo_name(repo):
            return RepoContext(action=action, org=org, repo=repo)
        return None
    if is_valid_repo_name(name):
        return RepoContext(action=action, repo=name)
    return None


class ContextResolver:
    """Extracts repository and branch hints from a natural-language instruction."""

    def parse(self, instruction: str) -> RepoContext | None:
        lower = instruction.lower()

        # Keep whatever context the session already has
        if any(phrase in lower for phrase in SAME_REPO_PHRASES):
            return None

        context: RepoContext | None = None

        if (m := CREATE_REPO_RE.search(lower)) and is_valid_repo_name(m.group(1)):
            context = _split_repo(m.group(1), ContextAction.CREATE)

        if (m := GITHUB_URL_RE.search(lower)) and context is None:
            context = RepoContext(action=ContextAction.SWITCH, org=m.group(1), repo=m.group(2))

        if m := ORG_REPO_RE.search(lower):
            org, repo = m.group(1), m.group(2)
            if is_valid_repo_name(org) and is_valid_repo_name(repo):
                context = RepoContext(action=ContextAction.SWITCH, org=org, repo=repo)

        if (m := SWITCH_REPO_RE.search(lower)) and context is None:
            context = _split_repo(m.group(1), ContextAction.SWITCH)

        if m := BRANCH_RE.search(lower):
            if context:
                context.branch = m.group(1)
            else:
                context = RepoContext(action=ContextAction.SWITCH, branch=m.group(1))

        if (m := SIMPLE_REPO_RE.search(lower)) and context is None and is_valid_repo_name(m.group(1)):
            context = RepoContext(action=ContextAction.SWITCH, repo=m.group(1))

        return context

    def apply(self, context: RepoContext, session: "SessionState") -> None:
        if context.org is not None or context.repo is not None:
            session.set_repo_context(
                context.org if context.org is not None else session.org,
                context.repo if context.repo is not None else session.repo,
                context.branch,
            )
        elif context.branch:
            session.set_branch(context.branch)

    def extract_task(self, instruction: str) -> str:
        """Instruction text with the context-switching phrases removed."""
        task = instruction
        for pattern in TASK_STRIP_PATTERNS:
            task = pattern.sub("", task)
        task = task.strip() or instruction
        return LEADING_CONJUNCTION_RE.sub("", task).strip()

    def build_context_prompt(self, session: "SessionState") -> str:
        parts: list[str] = []
        if session.org and session.repo:
            parts.append(f"Working in repository: {session.org}/{session.repo}")
        elif session.repo:
            parts.append(f"Working in repository: {session.repo}")

        if session.branch:
            parts.append(f"On branch: {session.branch}")

        if not parts:
            return ""
        return f"[Context: {', '.join(parts)}]\n\n"
