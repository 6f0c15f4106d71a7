"""Report rendering for analysis results."""

from pluton.aggregator import AnalysisReport
from pluton.detectors.base import (
    CRITICAL,
    HIGH,
    INFO,
    LOW,
    MEDIUM,
    SEVERITY_ORDER,
    WARNING,
    Category,
)


SEVERITY_COLORS = {
    CRITICAL: "\033[91m",  # Red
    HIGH: "\033[91m",      # Red
    MEDIUM: "\033[93m",    # Yellow
    LOW: "\033[92m",       # Green
    WARNING: "\033[93m",   # Yellow
    INFO: "\033[94m",      # Blue
}
RESET = "\033[0m"
BOLD = "\033[1m"
DIM = "\033[2m"

VULNERABILITY_SEVERITIES = (CRITICAL, HIGH, MEDIUM, LOW)

# Longer explanations for the markdown report, keyed by finding category.
KNOWLEDGE_BASE = {
    Category.ARBITRARY_CPI: {
        "description": (
            "The program invokes another program whose id comes from an account "
            "the caller supplies. Without checking that id, an attacker passes a "
            "malicious program that receives the same accounts and signer seeds."
        ),
        "example_scenario": (
            "A swap handler forwards tokens through `invoke(&transfer_ix, ...)` "
            "where `token_program` is an AccountInfo. The attacker passes their "
            "own program, which returns success without moving any tokens."
        ),
        "secure_example": (
            "require_keys_eq!(ctx.accounts.token_program.key(), spl_token::ID);\n"
            "invoke(&ix, &accounts)?;"
        ),
    },
    Category.UNCHECKED_PROGRAM_FIELD: {
        "description": (
            "A raw account field is used as the target of a cross-program "
            "invocation but carries no address constraint, so any program can "
            "be substituted."
        ),
        "secure_example": "pub token_program: Program<'info, Token>,",
    },
    Category.MISSING_REINIT_CHECK: {
        "description": (
            "An initialization function writes account data without first "
            "verifying that the account has not been initialized. Calling it "
            "again on a live account resets its state."
        ),
        "example_scenario": (
            "An attacker calls `initialize` on an existing vault, passing "
            "themselves as the new authority, and then withdraws its funds."
        ),
        "secure_example": (
            "require!(!vault.is_initialized, VaultError::AlreadyInitialized);\n"
            "vault.is_initialized = true;\n"
            "vault.authority = authority.key();"
        ),
    },
    Category.UNCHECKED_REMAINING_ACCOUNTS: {
        "description": (
            "`remaining_accounts` is not covered by any Anchor constraint. "
            "Every element must be checked for owner and identity before use."
        ),
        "secure_example": (
            "for acc in ctx.remaining_accounts.iter() {\n"
            "    require_keys_eq!(*acc.owner, crate::ID);\n"
            "}"
        ),
    },
    Category.UNCHECKED_ACCOUNT_INFO_FIELD: {
        "description": (
            "Anchor performs no checks on `AccountInfo` / `UncheckedAccount` "
            "fields. Without a constraint any account can be passed."
        ),
        "secure_example": (
            "/// CHECK: only used as the PDA signer\n"
            "#[account(seeds = [b\"authority\"], bump)]\n"
            "pub authority: UncheckedAccount<'info>,"
        ),
    },
    Category.ARITHMETIC_OVERFLOW: {
        "description": (
            "Release builds wrap on integer overflow unless overflow checks are "
            "enabled. A wrapped balance lets users withdraw or mint more than "
            "they own."
        ),
        "secure_example": (
            "vault.balance = vault.balance.checked_add(amount)\n"
            "    .ok_or(VaultError::Overflow)?;"
        ),
    },
    Category.BUMP_SEED_NON_CANONICAL: {
        "description": (
            "Several bumps can produce valid PDAs for the same seeds. Accepting "
            "a caller-supplied bump lets the caller pick a non-canonical address."
        ),
        "secure_example": (
            "let (pda, canonical_bump) = Pubkey::find_program_address(seeds, program_id);\n"
            "require_eq!(bump, canonical_bump);"
        ),
    },
    Category.ATA_INIT_MODE: {
        "description": (
            "Anyone can create a user's associated token account. An instruction "
            "that creates it with `init` fails once it exists, which blocks the "
            "user."
        ),
        "secure_example": (
            "#[account(\n"
            "    init_if_needed,\n"
            "    payer = user,\n"
            "    associated_token::mint = mint,\n"
            "    associated_token::authority = user,\n"
            ")]\n"
            "pub user_ata: Account<'info, TokenAccount>,"
        ),
    },
}


def format_terminal_report(report: AnalysisReport) -> str:
    """Format analysis report for terminal output."""
    lines = []

    # Header
    lines.append("")
    lines.append(f"{BOLD}Pluton Analysis Report{RESET}")
    lines.append("=" * 60)
    if report.target:
        lines.append(f"Target:            {report.target}")
    lines.append(f"Files analyzed:    {report.files_analyzed}")
    if report.files_skipped:
        lines.append(f"Files skipped:     {report.files_skipped}")
    lines.append(f"Detectors run:     {report.detectors_run}")
    if report.anchor_version:
        lines.append(f"Anchor version:    {report.anchor_version}")
    lines.append(f"Overflow checks:   {'enabled' if report.overflow_checks else 'disabled'}")
    if report.cancelled:
        lines.append(f"{SEVERITY_COLORS[WARNING]}Analysis was cancelled; results are partial.{RESET}")
    lines.append("")

    # Summary bar
    lines.append("  " + "  ".join(
        f"{SEVERITY_COLORS[sev]}{sev}: {report.count(sev)}{RESET}" for sev in SEVERITY_ORDER
    ))
    lines.append("")

    # Findings
    if not report.findings:
        lines.append(f"\033[92mNo issues detected.{RESET}")
        lines.append("")
        lines.append(f"{DIM}Analyzed {report.files_analyzed} files with "
                     f"{report.detectors_run} detectors.{RESET}")
    else:
        lines.append(f"{BOLD}Findings ({len(report.findings)}):{RESET}")
        lines.append("-" * 60)

        for i, finding in enumerate(report.findings, 1):
            color = SEVERITY_COLORS.get(finding.severity, "")
            lines.append("")
            lines.append(
                f"  {color}{BOLD}[{finding.severity.upper()}]{RESET} "
                f"{BOLD}{finding.category}{RESET}: {finding.message}"
            )
            lines.append(f"  File: {finding.file}:{finding.line}:{finding.column}")

            if finding.evidence_snippet:
                lines.append("")
                for snip_line in finding.evidence_snippet.split("\n"):
                    lines.append(f"    {snip_line}")

            if finding.remediation:
                lines.append("")
                lines.append(f"  {BOLD}Fix:{RESET} {finding.remediation.splitlines()[0]}")
            lines.append(f"  {DIM}id: {finding.id}{RESET}")

            if i < len(report.findings):
                lines.append("  " + "-" * 56)

    lines.append("")
    lines.append("=" * 60)
    lines.append("")

    return "\n".join(lines)


def format_json_report(report: AnalysisReport, indent: int = 2) -> str:
    """Format analysis report as JSON."""
    return report.to_json(indent=indent)


def format_markdown_report(report: AnalysisReport) -> str:
    """Format analysis report as Markdown.

    Vulnerabilities (Critical to Low) are grouped per severity and enriched
    from ``KNOWLEDGE_BASE``; warnings and informational items follow.
    """
    out = []
    out.append("# Pluton Analysis Report\n")
    out.append("## Summary\n")
    out.append(f"- **Critical Vulnerabilities**: {report.count(CRITICAL)}")
    out.append(f"- **High Severity Vulnerabilities**: {report.count(HIGH)}")
    out.append(f"- **Medium Severity Vulnerabilities**: {report.count(MEDIUM)}")
    out.append(f"- **Low Severity Vulnerabilities**: {report.count(LOW)}")
    out.append(f"- **Warnings**: {report.count(WARNING)}")
    out.append(f"- **Informational Items**: {report.count(INFO)}\n")
    if report.cancelled:
        out.append(f"> Analysis was cancelled after {report.files_analyzed} files; "
                   f"{report.files_skipped} files were not analyzed.\n")

    vulnerabilities = [f for f in report.findings if f.severity in VULNERABILITY_SEVERITIES]
    if vulnerabilities:
        out.append("## Vulnerabilities\n")
        for severity in VULNERABILITY_SEVERITIES:
            group = [f for f in vulnerabilities if f.severity == severity]
            if not group:
                continue
            out.append(f"### {severity} Severity\n")
            for finding in group:
                knowledge = KNOWLEDGE_BASE.get(finding.category, {})
                out.append(f"#### {finding.message}\n")
                if "description" in knowledge:
                    out.append(f"**Detailed Description**:\n{knowledge['description']}\n")
                if "example_scenario" in knowledge:
                    out.append(f"**Example Scenario**:\n{knowledge['example_scenario']}\n")
                out.append(f"**Location**: {_location(finding)}\n")
                out.append(f"**Suggestion**: {finding.remediation}\n")
                if "secure_example" in knowledge:
                    out.append("**Secure Implementation Example**:")
                    out.append("```rust")
                    out.append(knowledge["secure_example"])
                    out.append("```\n")
                out.append("---\n")

    warnings = [f for f in report.findings if f.severity == WARNING]
    if warnings:
        out.append("## Warnings\n")
        for finding in warnings:
            out.append(f"### {finding.message}\n")
            out.append(f"**Location**: {_location(finding)}\n")
            out.append(f"**Suggestion**: {finding.remediation}\n")
            out.append("---\n")

    infos = [f for f in report.findings if f.severity == INFO]
    if infos:
        out.append("## Informational Items\n")
        for finding in infos:
            out.append(f"- **{finding.message}** ({_location(finding)})")
        out.append("")

    return "\n".join(out)


def _location(finding) -> str:
    return f"{finding.file}:{finding.line}:{finding.column}"


FORMATTERS = {
    "terminal": format_terminal_report,
    "json": format_json_report,
    "markdown": format_markdown_report,
}


def render(report: AnalysisReport, output_format: str) -> str:
    return FORMATTERS[output_format](report)
