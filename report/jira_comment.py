"""
Jira wiki-markup rendering of a visa: possible blockers per suite with base branch history.
"""
from typing import List, Optional
from xml.sax.saxutils import escape

from models import SuiteStatus
from normalize.models import FailureSummary, TestFailure

FAILED_SUITE_COLOR = '#d04437'
BLOCKERS_PANEL = 'borderStyle=dashed|borderColor=#ccc|titleBGColor=#F7D6C1'
NO_BLOCKERS_PANEL = 'borderStyle=dashed|borderColor=#ccc|titleBGColor=#D6F7C1'


def jira_esc_text(txt: Optional[str]) -> str:
    """'|' delimits link and panel parameters in Jira markup."""
    if not txt:
        return ''
    return txt.replace('|', '/')


def _format_rate(rate: float) -> str:
    return str(int(rate)) if float(rate).is_integer() else str(rate)


def history_annotation(recent: Optional[FailureSummary], base_branch_label: str = 'master') -> str:
    if recent is None:
        return ''
    if recent.failure_rate is not None:
        return f" - {_format_rate(recent.failure_rate)}% fails in last {recent.runs} {base_branch_label} runs."
    if recent.failures is not None and recent.runs is not None:
        return f" - {recent.failures} fails / {recent.runs} {base_branch_label} runs."
    return ''


def _failure_line(failure: TestFailure, base_branch_label: str) -> str:
    if failure.suite_name is not None and failure.test_name is not None:
        name = jira_esc_text(failure.suite_name) + ': ' + jira_esc_text(failure.test_name)
    else:
        name = jira_esc_text(failure.name)
    return '* ' + name + history_annotation(failure.recent, base_branch_label) + '\n'


def _suite_block(suite: SuiteStatus, base_branch_label: str) -> str:
    lines = ['{color:' + FAILED_SUITE_COLOR + '}' + jira_esc_text(suite.name) + '{color}']
    header = f" [[tests {suite.failed_tests}"
    if suite.result:
        header += ' ' + suite.result
    header += '|' + suite.web_to_build + ']]\n'
    lines.append(header)
    for failure in suite.test_failures:
        lines.append(_failure_line(failure, base_branch_label))
    lines.append('\n')
    return ''.join(lines)


def generate_jira_comment(suites: List[SuiteStatus], web_url: str, suite_name: str, base_branch_label: str = 'master') -> str:
    """Compose the visa comment and escape it for transport."""
    name = jira_esc_text(suite_name)
    body = ''.join(_suite_block(s, base_branch_label) for s in suites)

    if body:
        res = '{panel:title=' + name + ': Possible Blockers|' + BLOCKERS_PANEL + '}\n' + body + '{panel}'
    else:
        res = '{panel:title=' + name + ': No blockers found!|' + NO_BLOCKERS_PANEL + '}{panel}'

    res += '\n[TeamCity *' + name + '* Results|' + web_url + ']'

    return escape(res)
