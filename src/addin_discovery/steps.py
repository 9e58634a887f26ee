"""The ordered stages of a discovery run.

Per-record stages only ever fill fields in; a field that is already set
(for example from a resumed snapshot) is left alone. The analysis is the
exception and is rebuilt on every run.
"""

from __future__ import annotations

import io
import logging
import re
import zipfile
from pathlib import Path, PurePosixPath

from addin_discovery.classification import analyze_record, violations
from addin_discovery.context import DiscoveryContext, safe_folder_name
from addin_discovery.descriptor import DescriptorInfo, merge_platforms, merge_references, parse_descriptor
from addin_discovery.discovery import discover_curated_listing, discover_yaml_listing
from addin_discovery.exceptions import RemoteServiceError, RepositoryNotFoundError
from addin_discovery.locator import find_solution_file
from addin_discovery.merge import merge_records
from addin_discovery.models import AnalysisResult, PackageRecord
from addin_discovery.pipeline import Stage
from addin_discovery.reports import MarkdownReport
from addin_discovery.solution import is_test_project, parse_solution_projects
from addin_discovery.url_normalizer import is_nuget_url

logger = logging.getLogger(__name__)

DISCOVER_YAML_LISTING = "discover_yaml_listing"
DISCOVER_CURATED_LISTING = "discover_curated_listing"
MERGE = "merge"
RESET_ANALYSIS = "reset_analysis"
NORMALIZE_URL = "normalize_url"
FIND_SOLUTION = "find_solution"
FIND_PROJECTS = "find_projects"
DOWNLOAD_PROJECT_FILES = "download_project_files"
FIND_REFERENCES = "find_references"
FIND_FRAMEWORKS = "find_frameworks"
FIND_ISSUES = "find_issues"
FIND_ICON = "find_icon"
ANALYZE = "analyze"
CREATE_ISSUES = "create_issues"
GENERATE_MARKDOWN_REPORT = "generate_markdown_report"

ISSUE_TITLE = "Recommended changes resulting from automated audit"
PULL_REQUEST_TITLE = "Use the recommended cake-contrib icon"
PULL_REQUEST_BRANCH = "addin-discovery/recommended-icon"
DESCRIPTOR_SUFFIX = ".csproj"

_ICON_ELEMENT = re.compile(r"(<PackageIconUrl>)(.*?)(</PackageIconUrl>)", re.DOTALL)


# Discovery and merge


def _discover_yaml_listing(context: DiscoveryContext) -> None:
    context.discovered.extend(
        discover_yaml_listing(
            context.provider, context.config.yaml_listing, max_workers=context.options.max_workers
        )
    )


def _discover_curated_listing(context: DiscoveryContext) -> None:
    context.discovered.extend(discover_curated_listing(context.provider, context.config.curated_listing))


def _merge(context: DiscoveryContext) -> None:
    merged = merge_records(context.discovered)
    logger.info("Merged %d discovered records into %d packages", len(context.discovered), len(merged))
    context.set_records(merged)
    context.discovered.clear()


# Enrichment


def reset_analysis(context: DiscoveryContext, record: PackageRecord) -> None:
    record.analysis = AnalysisResult()


def normalize_url(context: DiscoveryContext, record: PackageRecord) -> None:
    if record.is_linked or not is_nuget_url(record.repository_url):
        return
    resolved = context.normalizer.resolve_canonical_project_url(record.repository_url)
    if resolved != record.repository_url:
        logger.debug("Resolved %s to %s", record.repository_url, resolved)
    record.set_repository_url(resolved)


def find_solution(context: DiscoveryContext, record: PackageRecord) -> None:
    if not record.is_linked or record.solution_path:
        return
    try:
        entry = find_solution_file(context.provider, record.repository_owner, record.repository_name)
    except RepositoryNotFoundError:
        record.analysis.add_note(FIND_SOLUTION, f"the project does not exist: {record.repository_url}")
        return
    if entry is None:
        record.analysis.add_note(FIND_SOLUTION, f"unable to find a solution file in {record.repository_url}")
        return
    record.solution_path = entry.path


def _strip_archive_root(name: str) -> str:
    # zipballs wrap the tree in a single "<owner>-<repo>-<sha>/" folder
    parts = name.split("/", 1)
    return parts[1] if len(parts) == 2 else name


def projects_from_archive(data: bytes) -> list[str]:
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        names = [_strip_archive_root(info.filename) for info in archive.infolist() if not info.is_dir()]
    return sorted(
        n for n in names if n.lower().endswith(DESCRIPTOR_SUFFIX) and not is_test_project(n)
    )


def find_projects(context: DiscoveryContext, record: PackageRecord) -> None:
    if not record.solution_path or record.project_paths is not None:
        return
    owner, repo = record.repository_owner, record.repository_name
    solution = context.provider.get_file_content(owner, repo, record.solution_path)
    paths = parse_solution_projects(solution, record.solution_path)
    if not paths:
        logger.debug("%s lists no project, scanning the repository archive", record.solution_path)
        paths = projects_from_archive(context.provider.get_archive(owner, repo))
    if not paths:
        record.analysis.add_note(
            FIND_PROJECTS, f"the solution file does not reference any project: {record.solution_path}"
        )
    record.project_paths = paths


def _cached_descriptor_path(context: DiscoveryContext, record: PackageRecord, project_path: str) -> Path:
    """``<record folder>/<file name>``, or the flattened repository path when names collide."""
    name = PurePosixPath(project_path).name
    same_name = [p for p in record.project_paths or [] if PurePosixPath(p).name.lower() == name.lower()]
    if len(same_name) > 1:
        name = safe_folder_name(project_path)
    return context.record_folder(record) / name


def download_project_files(context: DiscoveryContext, record: PackageRecord) -> None:
    if not record.project_paths:
        return
    folder = context.record_folder(record)
    folder.mkdir(parents=True, exist_ok=True)
    for project_path in record.project_paths:
        target = _cached_descriptor_path(context, record, project_path)
        if target.exists():
            continue
        try:
            content = context.provider.get_file_content(
                record.repository_owner, record.repository_name, project_path
            )
        except RemoteServiceError as exc:
            record.analysis.add_note(DOWNLOAD_PROJECT_FILES, f"{project_path}: {exc}")
            continue
        target.write_bytes(content)


def _cached_descriptors(
    context: DiscoveryContext, record: PackageRecord, stage: str
) -> list[DescriptorInfo] | None:
    """Parsed descriptors from the download cache, ``None`` when nothing was downloaded."""
    folder = context.record_folder(record)
    if not folder.is_dir():
        return None
    files = sorted(p for p in folder.iterdir() if p.is_file() and p.suffix.lower() == DESCRIPTOR_SUFFIX)
    if not files:
        return None
    descriptors: list[DescriptorInfo] = []
    for path in files:
        try:
            descriptors.append(parse_descriptor(path.read_bytes()))
        except OSError as exc:
            record.analysis.add_note(stage, f"{path.name}: {exc}")
    return descriptors


def find_references(context: DiscoveryContext, record: PackageRecord) -> None:
    descriptors = _cached_descriptors(context, record, FIND_REFERENCES)
    if descriptors is None:
        return
    record.references = merge_references(ref for info in descriptors for ref in info.references)


def find_frameworks(context: DiscoveryContext, record: PackageRecord) -> None:
    descriptors = _cached_descriptors(context, record, FIND_FRAMEWORKS)
    if descriptors is None:
        return
    record.target_platforms = merge_platforms(p for info in descriptors for p in info.target_platforms)


def find_icon(context: DiscoveryContext, record: PackageRecord) -> None:
    if record.icon_url:
        return
    descriptors = _cached_descriptors(context, record, FIND_ICON) or []
    record.icon_url = next((info.icon_url for info in descriptors if info.icon_url), None)


def has_authenticated_actor(context: DiscoveryContext) -> bool:
    try:
        return context.actor_login() is not None
    except RemoteServiceError as exc:
        logger.warning("Unable to identify the authenticated GitHub user: %s", exc, extra=exc.as_log_fields())
        return False


def find_issues(context: DiscoveryContext, record: PackageRecord) -> None:
    if not record.is_linked:
        return
    owner, repo = record.repository_owner, record.repository_name
    login = context.actor_login()
    issues = context.issues_for(
        owner, repo, lambda: context.provider.find_issues_by_creator(owner, repo, login)
    )
    if record.issue_number is None:
        issue = next((i for i in issues if not i.is_pull_request and i.title == ISSUE_TITLE), None)
        if issue is not None:
            record.issue_number, record.issue_url = issue.number, issue.html_url
    if record.pull_request_number is None:
        pull = next((i for i in issues if i.is_pull_request and i.title == PULL_REQUEST_TITLE), None)
        if pull is not None:
            record.pull_request_number, record.pull_request_url = pull.number, pull.html_url


def analyze(context: DiscoveryContext, record: PackageRecord) -> None:
    notes = list(record.analysis.notes)
    record.analysis = analyze_record(
        record,
        context.cake_version,
        context.config.tracked_dependencies,
        context.config.canonical_icon_url,
    )
    record.analysis.notes = notes


# Remediation


def issue_body(problems: list[str]) -> str:
    lines = [
        "We performed an automated audit of your Cake addin and found that it does not follow all the best practices.",
        "",
        "We encourage you to make the following modifications:",
        "",
    ]
    lines.extend(f"- [ ] {problem}" for problem in problems)
    lines.extend(["", "Apologies if this is already being worked on, or if there are existing open issues."])
    return "\n".join(lines) + "\n"


def rewrite_icon_url(descriptor: str, icon_url: str) -> str | None:
    """``descriptor`` with its first ``PackageIconUrl`` replaced, ``None`` when it has none."""
    if _ICON_ELEMENT.search(descriptor) is None:
        return None
    return _ICON_ELEMENT.sub(lambda m: f"{m.group(1)}{icon_url}{m.group(3)}", descriptor, count=1)


def _descriptor_text(context: DiscoveryContext, record: PackageRecord, project_path: str) -> str:
    cached = _cached_descriptor_path(context, record, project_path)
    if cached.exists():
        content = cached.read_bytes()
    else:
        content = context.provider.get_file_content(record.repository_owner, record.repository_name, project_path)
    return content.decode("utf-8-sig", errors="replace")


def _submit_icon_pull_request(context: DiscoveryContext, record: PackageRecord) -> None:
    owner, repo = record.repository_owner, record.repository_name
    project_path = record.project_paths[0]
    updated = rewrite_icon_url(_descriptor_text(context, record, project_path), context.config.canonical_icon_url)
    if updated is None:
        logger.info("No PackageIconUrl to rewrite in %s", project_path)
        return
    base = context.provider.create_branch(owner, repo, PULL_REQUEST_BRANCH)
    context.provider.create_or_update_file(
        owner,
        repo,
        project_path,
        updated.encode("utf-8"),
        "Use the recommended cake-contrib icon",
        PULL_REQUEST_BRANCH,
    )
    body = f"Resolves #{record.issue_number}\n" if record.issue_number else ""
    pull = context.provider.open_pull_request(owner, repo, PULL_REQUEST_TITLE, PULL_REQUEST_BRANCH, base, body)
    record.pull_request_number, record.pull_request_url = pull.number, pull.html_url
    context.remember_issue(owner, repo, pull)


def create_issues(context: DiscoveryContext, record: PackageRecord) -> None:
    analysis = record.analysis
    if not analysis.analyzed or analysis.has_notes or not record.is_linked:
        return
    problems = violations(record, context.cake_version)
    if not problems:
        return
    owner, repo = record.repository_owner, record.repository_name
    if record.issue_number is None:
        issue = context.provider.create_issue(owner, repo, ISSUE_TITLE, issue_body(problems))
        record.issue_number, record.issue_url = issue.number, issue.html_url
        context.remember_issue(owner, repo, issue)
        logger.info("Opened issue #%d in %s/%s", issue.number, owner, repo)
    if (
        context.options.submit_pull_requests
        and not analysis.uses_expected_icon
        and record.pull_request_number is None
        and record.project_paths
    ):
        _submit_icon_pull_request(context, record)


def _generate_markdown_report(context: DiscoveryContext) -> None:
    report = MarkdownReport().render(context.ordered_records(), context)
    path = context.markdown_report_path
    path.write_text(report, encoding="utf-8")
    logger.info("Wrote markdown report to %s", path)


def _should_create_issues(context: DiscoveryContext) -> bool:
    return context.options.create_issues and has_authenticated_actor(context)


def _should_generate_markdown_report(context: DiscoveryContext) -> bool:
    return context.options.markdown_report


def build_default_stages() -> list[Stage]:
    return [
        Stage(
            DISCOVER_YAML_LISTING,
            "Discover addins from the website YAML files",
            transform=_discover_yaml_listing,
            mutates_set=True,
            checkpoint=False,
            skip_on_resume=True,
        ),
        Stage(
            DISCOVER_CURATED_LISTING,
            "Discover addins from the curated status list",
            transform=_discover_curated_listing,
            mutates_set=True,
            checkpoint=False,
            skip_on_resume=True,
        ),
        Stage(MERGE, "Remove duplicate records", transform=_merge, mutates_set=True, skip_on_resume=True),
        Stage(RESET_ANALYSIS, "Clear the previous analysis", process=reset_analysis),
        Stage(NORMALIZE_URL, "Resolve NuGet URLs to project URLs", process=normalize_url),
        Stage(FIND_SOLUTION, "Find the solution file", process=find_solution),
        Stage(FIND_PROJECTS, "Find the project files", process=find_projects),
        Stage(DOWNLOAD_PROJECT_FILES, "Download the project files", process=download_project_files),
        Stage(FIND_REFERENCES, "Find package references", process=find_references),
        Stage(FIND_FRAMEWORKS, "Find target frameworks", process=find_frameworks),
        Stage(
            FIND_ISSUES,
            "Find open issues and pull requests",
            process=find_issues,
            precondition=has_authenticated_actor,
        ),
        Stage(FIND_ICON, "Find the package icon", process=find_icon),
        Stage(ANALYZE, "Analyze the addins", process=analyze),
        Stage(
            CREATE_ISSUES,
            "Open issues and pull requests",
            process=create_issues,
            precondition=_should_create_issues,
        ),
        Stage(
            GENERATE_MARKDOWN_REPORT,
            "Generate the markdown report",
            transform=_generate_markdown_report,
            precondition=_should_generate_markdown_report,
            checkpoint=False,
        ),
    ]
