"""Review orchestration: the single pipeline behind `gitpreflight review`.

Stages, in order:

  PolicyCheck   disabled → PASS, nothing else touched
  SkipCheck     one-shot skip-next marker → consume, PASS with a note
  BacklogCheck  (staged only) unresolved UNCHECKED commits on this branch → FAIL
  TokenCheck    no credentials → FAIL when required, PASS note when optional
  Collecting    staged diff or push range via GitRangeResolver
  LocalChecks   configured linters; blocking findings stop before the network
  RemoteReview  best-effort side calls, then one bounded reviewer call
  Rendering     status from findings, stable Markdown

"Could not get an answer" (timeout, connection failure, 5xx, an UNCHECKED
reply) never blocks: the commits are recorded in the branch backlog and the
result is UNCHECKED. The backlog then blocks the next staged review until a
push review for that branch gets a real answer.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from gitpreflight_core.checks import LocalCheckOutcome, run_local_checks
from gitpreflight_core.config import (
    RepoConfig,
    UserConfig,
    api_base_url,
    load_repo_config,
    load_user_config,
)
from gitpreflight_core.errors import GitPreflightError
from gitpreflight_core.findings import Finding, ReviewResult, derive_status, sort_findings
from gitpreflight_core.git.plumbing import GitPlumbing
from gitpreflight_core.git.ranges import ChangeSet, GitRangeResolver, PushScope, ReviewScope
from gitpreflight_core.markdown import format_review_markdown
from gitpreflight_core.merge import merge_findings
from gitpreflight_core.policy import EffectivePolicy, PolicyResolver
from gitpreflight_core.reviewers.base import (
    BaseReviewer,
    LocalAgentError,
    ReviewerAuthError,
    ReviewerRequestError,
    ReviewerResponseError,
    ReviewerUnavailableError,
    ReviewRequest,
    ReviewResponse,
)
from gitpreflight_core.reviewers.http import ApiClient, HttpReviewer
from gitpreflight_core.reviewers.local_agent import LocalAgentReviewer
from gitpreflight_core.runtime import RunContext
from gitpreflight_core.sync import register_repo, sync_instruction_files
from gitpreflight_core.utils.instructions import discover_instruction_files, hash_files
from gitpreflight_store.base import BaseStateStore
from gitpreflight_store.models import PendingCommit, PendingNextCommitMarker

logger = logging.getLogger(__name__)

# Pseudo-path for findings about the run itself rather than a file.
TOOL_PATH = "(gitpreflight)"
# Backlog placeholder for a commit that does not exist yet.
STAGED_PLACEHOLDER_SHA = "staged"

LocalChecks = Callable[[str, list, RepoConfig], LocalCheckOutcome]


@dataclass
class ReviewOutcome:
    result: ReviewResult
    markdown: str
    policy: EffectivePolicy
    branch: str | None = None
    stage: str = "Done"

    @property
    def exit_code(self) -> int:
        return self.result.exit_code


def _tool_finding(severity: str, title: str, message: str) -> Finding:
    return Finding(path=TOOL_PATH, severity=severity, title=title, message=message)


def _backlog_message(branch: str, pending: list[PendingCommit]) -> str:
    lines = [f"Branch `{branch}` has commits that were never reviewed:", ""]
    for commit in pending:
        reason = f" ({commit.reason})" if commit.reason else ""
        if commit.sha == STAGED_PLACEHOLDER_SHA:
            lines.append(f"- a commit whose sha was never captured{reason}")
            lines.append("  (the post-commit hook did not run, or that commit was aborted)")
        else:
            lines.append(f"- {commit.sha}{reason}")
    lines += [
        "",
        "Push the branch to get them reviewed, or bypass once with "
        '`gitpreflight skip-next --reason "<why>"` or `git commit --no-verify`.',
    ]
    return "\n".join(lines)


@dataclass
class ReviewOrchestrator:
    """Runs one review for one scope.

    Collaborators are injected so tests can swap in an InMemoryStateStore, a
    fake reviewer or canned local checks. ``reviewer`` and ``api_client``
    default to the HTTP reviewer built from the environment.
    """

    ctx: RunContext
    git: GitPlumbing
    store: BaseStateStore
    token: str | None = None
    use_local_agent: bool = False
    reviewer: BaseReviewer | None = None
    api_client: ApiClient | None = None
    policy_resolver: PolicyResolver | None = None
    local_checks: LocalChecks = run_local_checks
    user_config: UserConfig | None = None
    side_calls: bool = True

    def run(self, scope: ReviewScope) -> ReviewOutcome:
        repo_root = self.git.repo_root(self.ctx.cwd)
        is_push = isinstance(scope, PushScope)

        # PolicyCheck
        resolver = self.policy_resolver or PolicyResolver(self.git)
        policy = resolver.resolve(repo_root).effective
        logger.debug("Effective policy: %s (from %s)", policy.policy, policy.source)
        if policy.policy == "disabled":
            return self._finish(ReviewResult.from_findings([]), policy, None, "PolicyCheck")

        branch = self.git.current_branch(repo_root) or "HEAD"

        # SkipCheck
        marker = self.store.read_skip_next()
        if marker is not None:
            self.store.clear_skip_next()
            note = _tool_finding("note", "Review skipped", f"Skipped once via skip-next: {marker.reason}")
            return self._finish(ReviewResult.from_findings([note]), policy, branch, "SkipCheck")

        # BacklogCheck
        if not is_push:
            pending = self.store.pending_for_branch(branch)
            if pending:
                finding = _tool_finding("major", "Unreviewed commits pending", _backlog_message(branch, pending))
                return self._finish(ReviewResult.from_findings([finding]), policy, branch, "BacklogCheck")

        # TokenCheck
        if not self.use_local_agent and self.reviewer is None and not self.token:
            if policy.policy == "required":
                finding = _tool_finding(
                    "major",
                    "Authentication required",
                    "This repository requires a review before commits and pushes. Run `gitpreflight auth login`.",
                )
            else:
                finding = _tool_finding(
                    "note",
                    "Review skipped: not signed in",
                    "Run `gitpreflight auth login` to enable reviews.",
                )
            return self._finish(ReviewResult.from_findings([finding]), policy, branch, "TokenCheck")

        # Collecting
        repo_config = load_repo_config(repo_root)
        changes = GitRangeResolver(self.git, repo_root).resolve(scope)
        if is_push and changes.inferred_branch:
            branch = changes.inferred_branch
        if changes.is_empty:
            logger.debug("Nothing to review.")
            return self._finish(ReviewResult.from_findings([]), policy, branch, "Collecting")

        # LocalChecks
        local = self.local_checks(repo_root, changes.files, repo_config)
        if local.blocking:
            return self._finish(ReviewResult.from_findings(local.findings), policy, branch, "LocalChecks")

        # RemoteReview
        result = self._remote_review(repo_root, repo_config, scope, branch, changes, local.findings)
        return self._finish(result, policy, branch, "RemoteReview")

    # ------------------------------------------------------------------ #
    # Remote review                                                        #
    # ------------------------------------------------------------------ #

    def _build_reviewer(self, repo_root: str, repo_config: RepoConfig) -> tuple[BaseReviewer, ApiClient | None]:
        if self.reviewer is not None:
            return self.reviewer, self.api_client
        timeout_s = repo_config.timeout_ms / 1000
        if self.use_local_agent:
            user_config = self.user_config or load_user_config(self.ctx.env)
            return LocalAgentReviewer(user_config.local_agent, repo_root, timeout_s), None
        client = self.api_client or ApiClient(api_base_url(self.ctx.env), self.token or "", timeout_s)
        return HttpReviewer(client), client

    def _remote_review(
        self,
        repo_root: str,
        repo_config: RepoConfig,
        scope: ReviewScope,
        branch: str,
        changes: ChangeSet,
        local_findings: list[Finding],
    ) -> ReviewResult:
        reviewer, client = self._build_reviewer(repo_root, repo_config)
        user_config = self.user_config or load_user_config(self.ctx.env)

        instruction_paths = discover_instruction_files(
            repo_root, [f.path for f in changes.files], repo_config.instruction_files
        )
        hashed, _missing = hash_files(repo_root, instruction_paths)

        if client is not None and self.side_calls:
            self._best_effort_side_calls(client, repo_root, hashed)

        request = ReviewRequest(
            branch=branch,
            plan_tier=user_config.plan_tier,
            staged_patch=changes.patch,
            staged_files=changes.files,
            instruction_files=hashed,
        )

        logger.debug("Requesting review from %s (%d files)", reviewer.name, len(changes.files))
        try:
            response = reviewer.review(request)
        except ReviewerUnavailableError as e:
            logger.warning("Reviewer unavailable: %s", e)
            return self._unchecked(scope, branch, changes, e.reason, str(e), local_findings)
        except ReviewerAuthError as e:
            detail = f"\n\n{e.body.strip()}" if e.body.strip() else ""
            finding = _tool_finding(
                "major",
                "Authentication failed",
                f"The reviewer rejected your credentials ({e.status}). Run `gitpreflight auth login`.{detail}",
            )
            return ReviewResult.from_findings([*local_findings, finding])
        except ReviewerRequestError as e:
            finding = _tool_finding("major", f"Review request rejected ({e.status})", e.body or str(e))
            return ReviewResult.from_findings([*local_findings, finding])
        except ReviewerResponseError as e:
            finding = _tool_finding("major", "Invalid reviewer response", str(e))
            return ReviewResult.from_findings([*local_findings, finding])
        except LocalAgentError as e:
            finding = _tool_finding("major", "Local agent failed", str(e))
            return ReviewResult.from_findings([*local_findings, finding])

        if response.status == "UNCHECKED":
            return self._unchecked(
                scope, branch, changes, "reviewer returned UNCHECKED", "The reviewer could not complete the review.",
                [*local_findings, *self._remote_findings(response)],
            )

        findings = sort_findings([*local_findings, *self._remote_findings(response)])
        if isinstance(scope, PushScope) and self.store.clear_branch(branch):
            logger.debug("Cleared backlog for %s", branch)
        return ReviewResult(status=derive_status(findings), findings=findings)

    @staticmethod
    def _remote_findings(response: ReviewResponse) -> list[Finding]:
        if response.per_model:
            return merge_findings(response.per_model)
        return list(response.findings)

    def _best_effort_side_calls(self, client: ApiClient, repo_root: str, hashed: list) -> None:
        remote_head = GitRangeResolver(self.git, repo_root).resolve_remote_head_ref("origin")
        default_branch = remote_head.split("/", 1)[1] if remote_head and "/" in remote_head else None
        registered = register_repo(client, self.git.remote_url(repo_root), default_branch)
        if not registered.ok:
            logger.debug("Repository not registered: %s", registered.error)
        synced = sync_instruction_files(client, repo_root, hashed)
        if not synced.ok:
            logger.debug("Instruction files not synced: %s", synced.error)

    def _unchecked(
        self,
        scope: ReviewScope,
        branch: str,
        changes: ChangeSet,
        reason: str,
        detail: str,
        findings: list[Finding],
    ) -> ReviewResult:
        now = self.ctx.now_ms()
        backlog_reason = f"UNCHECKED: {reason}"

        if isinstance(scope, PushScope):
            shas = changes.commit_shas or [s for s in (scope.local_sha,) if s]
            commits = [PendingCommit(sha=sha, created_at_ms=now, reason=backlog_reason) for sha in shas]
        else:
            commits = [PendingCommit(sha=STAGED_PLACEHOLDER_SHA, created_at_ms=now, reason=backlog_reason)]
            self.store.write_pending_next_commit(
                PendingNextCommitMarker(created_at_ms=now, branch=branch, reason=backlog_reason)
            )
        self.store.append_pending(branch, commits)

        note = _tool_finding(
            "note",
            "Review unavailable",
            f"{detail}\n\nThe changes were allowed and recorded as unreviewed on `{branch}`.",
        )
        return ReviewResult.unchecked(sort_findings([*findings, note]))

    def _finish(self, result: ReviewResult, policy: EffectivePolicy, branch: str | None, stage: str) -> ReviewOutcome:
        logger.debug("Review finished at %s with %s", stage, result.status)
        return ReviewOutcome(
            result=result,
            markdown=format_review_markdown(result),
            policy=policy,
            branch=branch,
            stage=stage,
        )


def capture_post_commit(git: GitPlumbing, store: BaseStateStore, repo_root: str) -> str | None:
    """Swap the newest staged placeholder for the commit HEAD now points at.

    Runs from the post-commit hook after an UNCHECKED staged review. Returns
    the recorded sha, or None when there was nothing to do. Never raises.
    """
    try:
        marker = store.read_pending_next_commit()
        if marker is None:
            return None
        head = git.head_sha(repo_root)
        if not head:
            return None

        state = store.read_pending()
        commits = state.branches.setdefault(marker.branch, [])
        for commit in reversed(commits):
            if commit.sha == STAGED_PLACEHOLDER_SHA:
                commit.sha = head
                break
        else:
            if all(c.sha != head for c in commits):
                commits.append(PendingCommit(sha=head, created_at_ms=marker.created_at_ms, reason=marker.reason))
        store.write_pending(state)
        store.clear_pending_next_commit()
        return head
    except (GitPreflightError, OSError) as e:
        logger.warning("Could not record the unreviewed commit: %s", e)
        return None
