"""Tests for pluton detectors.

Each detector has:
  - True positive: known-vulnerable code that MUST be detected
  - True negative: safe code that MUST NOT be flagged
"""

import os
import sys
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pluton.detectors import (
    AccountInfoCastDetector,
    ArbitraryCpiDetector,
    ArithmeticOverflowDetector,
    AtaInitModeDetector,
    BumpSeedNonCanonicalDetector,
    ErrorEnumDetector,
    GenericCpiValidationHintDetector,
    HardcodedBumpSeedDetector,
    InitIfNeededUsageDetector,
    LargeIntegerLiteralDetector,
    MissingIsInitializedFieldDetector,
    MissingReinitCheckDetector,
    SpaceWithoutInitDetector,
    UncheckedAccountInfoFieldDetector,
    UncheckedProgramFieldDetector,
    UncheckedRemainingAccountsDetector,
)
from pluton.detectors.base import DetectionContext
from pluton.model import StructuralModel, build_model
from pluton.registry import DetectorRegistry

TEST_DIR = os.path.join(os.path.dirname(__file__), "test_patterns")


def read_test_file(subdir, filename):
    path = os.path.join(TEST_DIR, subdir, filename)
    with open(path, "r") as f:
        return f.read()


def run_detector(detector, content, path="test.rs", overflow_checks=False):
    model = build_model(path, content)
    assert isinstance(model, StructuralModel), model
    context = DetectionContext(overflow_checks=overflow_checks)
    return DetectorRegistry([detector]).run(model, context=context)


def locate(content, needle):
    """1-based (line, column) of the first occurrence of ``needle``."""
    for number, line in enumerate(content.split("\n"), 1):
        if needle in line:
            return number, line.index(needle) + 1
    raise AssertionError(f"{needle!r} not in content")


SYSTEM_TRANSFER = """
#[program]
pub mod payout {
    use super::*;

    pub fn pay(ctx: Context<Pay>, amount: u64) -> Result<()> {
        invoke(
            &system_instruction::transfer(ctx.accounts.to.key, ctx.accounts.from.key, amount),
            &[ctx.accounts.to.to_account_info(), ctx.accounts.from.to_account_info()],
        )?;
        Ok(())
    }
}

#[derive(Accounts)]
pub struct Pay<'info> {
    /// CHECK: lamports source, signs through the transaction
    #[account(mut, signer)]
    pub to: AccountInfo<'info>,
    #[account(mut)]
    pub from: Signer<'info>,
    pub system_program: Program<'info, System>,
}
"""


PAYOUT = """
#[program]
pub mod payout {
    use super::*;

    pub fn pay(ctx: Context<Pay>, amount: u64) -> Result<()> {
        let target = &ctx.remaining_accounts[0];
        BODY
        Ok(())
    }
}
"""


# ─── PLU-001: Arbitrary CPI ─────────────────────────────────────────

class TestArbitraryCpi:
    def setup_method(self):
        self.detector = ArbitraryCpiDetector()

    def test_detects_unguarded_invoke(self):
        """An invoke whose program comes from next_account_info must be flagged once."""
        content = read_test_file("vulnerable", "arbitrary_cpi.rs")
        findings = run_detector(self.detector, content)
        assert len(findings) == 1
        assert findings[0].category == "ArbitraryCPI"
        assert findings[0].severity == "Critical"
        assert (findings[0].line, findings[0].column) == locate(content, "invoke(&ix")
        assert "'target_program'" in findings[0].message

    def test_ignores_guarded_invoke(self):
        """A program id comparison with early return before the call suppresses the finding."""
        content = read_test_file("safe", "guarded_cpi.rs")
        assert run_detector(self.detector, content) == []

    def test_detects_cpi_context_on_raw_field(self):
        """CpiContext::new on an AccountInfo field of the accounts struct is flagged."""
        content = read_test_file("vulnerable", "unchecked_program_field.rs")
        findings = run_detector(self.detector, content)
        assert len(findings) == 1
        assert (findings[0].line, findings[0].column) == locate(content, "CpiContext::new")

    def test_ignores_program_typed_handle(self):
        """Program<'info, T> handles are checked by Anchor."""
        content = read_test_file("safe", "anchor_vault.rs")
        assert run_detector(self.detector, content) == []

    def test_require_keys_eq_suppresses(self):
        content = """
        #[program]
        pub mod relay {
            use super::*;
            pub fn relay_call(ctx: Context<RelayCall>) -> Result<()> {
                require_keys_eq!(ctx.accounts.target_program.key(), spl_token::ID);
                let cpi_ctx = CpiContext::new(ctx.accounts.target_program.to_account_info(), Forward {});
                forward::call(cpi_ctx)
            }
        }

        #[derive(Accounts)]
        pub struct RelayCall<'info> {
            pub target_program: AccountInfo<'info>,
        }
        """
        assert run_detector(self.detector, content) == []

    def test_detects_indexed_account_slice(self):
        """A handle taken from the accounts slice by index is an unchecked account."""
        content = """
        pub fn process(accounts: &[AccountInfo], ix_data: &[u8]) -> ProgramResult {
            let program = &accounts[2];
            let ix = Instruction::new_with_bytes(*program.key, ix_data, vec![]);
            invoke_signed(&ix, accounts, &[&[b"auth"]])
        }
        """
        findings = run_detector(self.detector, content)
        assert len(findings) == 1
        assert "'program'" in findings[0].message

    def test_ignores_system_transfer_from_pda(self):
        """The source of a system transfer is not the invoked program."""
        content = read_test_file("vulnerable", "pda_vault.rs")
        assert run_detector(self.detector, content) == []

    def test_ignores_system_instruction_builders(self):
        assert run_detector(self.detector, SYSTEM_TRANSFER) == []

    def test_detects_token_instruction_program(self):
        """spl_token instruction builders take the program id first."""
        content = """
        pub fn process(accounts: &[AccountInfo], amount: u64) -> ProgramResult {
            let account_iter = &mut accounts.iter();
            let token_program = next_account_info(account_iter)?;
            let source = next_account_info(account_iter)?;
            let destination = next_account_info(account_iter)?;
            let authority = next_account_info(account_iter)?;
            let ix = spl_token::instruction::transfer(
                token_program.key, source.key, destination.key, authority.key, &[], amount,
            )?;
            invoke(&ix, &[source.clone(), destination.clone(), authority.clone()])
        }
        """
        findings = run_detector(self.detector, content)
        assert len(findings) == 1
        assert "'token_program'" in findings[0].message


# ─── PLU-002: Unchecked program field ───────────────────────────────

class TestUncheckedProgramField:
    def setup_method(self):
        self.detector = UncheckedProgramFieldDetector()

    def test_detects_raw_cpi_target_field(self):
        content = read_test_file("vulnerable", "unchecked_program_field.rs")
        findings = run_detector(self.detector, content)
        assert len(findings) == 1
        assert findings[0].severity == "Critical"
        assert (findings[0].line, findings[0].column) == locate(content, "target_program: AccountInfo")

    @pytest.mark.parametrize("content", [
        read_test_file("vulnerable", "pda_vault.rs"),
        SYSTEM_TRANSFER,
    ])
    def test_ignores_system_transfer_accounts(self, content):
        """Raw accounts passed to system_instruction builders are not CPI targets."""
        assert run_detector(self.detector, content) == []

    @pytest.mark.parametrize("constraint", [
        "address = spl_token::ID",
        "constraint = target_program.key() == spl_token::ID",
    ])
    def test_ignores_identity_constraint(self, constraint):
        """An address or key-equality constraint pins the program."""
        content = read_test_file("vulnerable", "unchecked_program_field.rs").replace(
            "    pub target_program: AccountInfo<'info>,",
            f"    #[account({constraint})]\n    pub target_program: AccountInfo<'info>,",
        )
        assert run_detector(self.detector, content) == []

    def test_ignores_raw_field_not_used_in_cpi(self):
        content = read_test_file("regression", "accounts.rs")
        assert run_detector(self.detector, content) == []


# ─── PLU-003: Missing reinitialization check ────────────────────────

GUARD_AFTER_WRITE = """
pub fn {name}(ctx: Context<Initialize>) -> Result<()> {{
    let vault = &mut ctx.accounts.vault;
    vault.authority = ctx.accounts.payer.key();
    vault.is_initialized = true;
    Ok(())
}}

#[derive(Accounts)]
pub struct Initialize<'info> {{
    #[account(mut)]
    pub vault: Account<'info, Vault>,
    pub payer: Signer<'info>,
}}

#[account]
pub struct Vault {{
    pub is_initialized: bool,
    pub authority: Pubkey,
}}
"""


class TestMissingReinitCheck:
    def setup_method(self):
        self.detector = MissingReinitCheckDetector()

    def test_detects_initializer_without_guard_field(self):
        content = read_test_file("vulnerable", "reinit.rs")
        findings = run_detector(self.detector, content)
        assert len(findings) == 1
        assert findings[0].severity == "High"
        assert (findings[0].line, findings[0].column) == locate(content, "initialize(")
        assert "'Vault' has no initialization guard field" in findings[0].message

    def test_ignores_guard_read_before_write(self):
        content = read_test_file("safe", "reinit_guarded.rs")
        assert run_detector(self.detector, content) == []

    def test_ignores_init_constraint(self):
        """Accounts created with Anchor's init constraint cannot be initialized twice."""
        content = read_test_file("safe", "anchor_vault.rs")
        assert run_detector(self.detector, content) == []

    def test_detects_guard_checked_after_write(self):
        content = GUARD_AFTER_WRITE.format(name="initialize")
        findings = run_detector(self.detector, content)
        assert len(findings) == 1
        assert "'Vault.is_initialized' is not checked before the first write" in findings[0].message

    def test_ignores_non_initializer(self):
        content = GUARD_AFTER_WRITE.format(name="update_authority")
        assert run_detector(self.detector, content) == []

    def test_native_initializer_without_guard_read(self):
        """Without local data structs any guard read before the first write is accepted."""
        content = """
        pub fn process_init(accounts: &[AccountInfo]) -> ProgramResult {
            let state_info = next_account_info(&mut accounts.iter())?;
            let mut state = State::try_from_slice(&state_info.data.borrow())?;
            state.owner = *state_info.key;
            state.serialize(&mut &mut state_info.data.borrow_mut()[..])?;
            Ok(())
        }
        """
        findings = run_detector(self.detector, content)
        assert len(findings) == 1
        assert "no initialization guard" in findings[0].message

        guarded = content.replace(
            "            state.owner",
            "            if state.is_initialized {\n"
            "                return Err(ProgramError::AccountAlreadyInitialized);\n"
            "            }\n"
            "            state.owner",
        )
        assert run_detector(self.detector, guarded) == []


# ─── PLU-004: Unchecked remaining_accounts ──────────────────────────

class TestUncheckedRemainingAccounts:
    def setup_method(self):
        self.detector = UncheckedRemainingAccountsDetector()

    def test_detects_unchecked_iteration(self):
        content = read_test_file("vulnerable", "remaining_accounts.rs")
        findings = run_detector(self.detector, content)
        assert len(findings) == 1
        assert findings[0].severity == "High"
        assert (findings[0].line, findings[0].column) == locate(content, "remaining_accounts")

    @pytest.mark.parametrize("check", [
        "require_keys_eq!(*account.owner, crate::ID);",
        "let _state = Account::<State>::try_from(account)?;",
        "if account.owner != &crate::ID { return err!(ErrorCode::InvalidOwner); }",
    ])
    def test_ignores_checked_elements(self, check):
        content = read_test_file("vulnerable", "remaining_accounts.rs").replace(
            "            let mut data",
            f"            {check}\n            let mut data",
        )
        assert run_detector(self.detector, content) == []

    def test_ignores_functions_without_remaining_accounts(self):
        content = read_test_file("safe", "anchor_vault.rs")
        assert run_detector(self.detector, content) == []

    @pytest.mark.parametrize("body", [
        # checked arithmetic says nothing about the account
        "**target.try_borrow_mut_lamports()? = amount.checked_add(1).unwrap();",
        # a key check on an unrelated account
        "**target.try_borrow_mut_lamports()? += amount;\n"
        "        require_keys_eq!(ctx.accounts.authority.key(), ADMIN);",
        # the element is checked only after it was written
        "**target.try_borrow_mut_lamports()? += amount;\n"
        "        require_keys_eq!(*target.owner, crate::ID);",
    ])
    def test_detects_use_before_element_check(self, body):
        content = PAYOUT.replace("BODY", body)
        findings = run_detector(self.detector, content)
        assert len(findings) == 1
        assert findings[0].severity == "High"
        assert (findings[0].line, findings[0].column) == locate(content, "remaining_accounts")

    def test_ignores_bound_element_checked_first(self):
        content = PAYOUT.replace(
            "BODY",
            "require_keys_eq!(*target.owner, crate::ID);\n"
            "        **target.try_borrow_mut_lamports()? += amount;",
        )
        assert run_detector(self.detector, content) == []


# ─── PLU-005: Unchecked AccountInfo field ───────────────────────────

class TestUncheckedAccountInfoField:
    def setup_method(self):
        self.detector = UncheckedAccountInfoFieldDetector()

    def test_detects_unconstrained_account_info(self):
        content = read_test_file("vulnerable", "unchecked_program_field.rs")
        findings = run_detector(self.detector, content)
        assert len(findings) == 1
        assert findings[0].severity == "High"
        assert "'target_program'" in findings[0].message

    def test_ignores_seeds_and_owner_constraints(self):
        content = read_test_file("regression", "accounts.rs")
        assert run_detector(self.detector, content) == []

    def test_ignores_has_one_target(self):
        """A field named by another field's has_one constraint is validated."""
        content = """
        #[derive(Accounts)]
        pub struct Withdraw<'info> {
            #[account(mut, has_one = authority)]
            pub vault: Account<'info, Vault>,
            pub authority: AccountInfo<'info>,
        }
        """
        assert run_detector(self.detector, content) == []

    def test_check_comment_is_not_a_constraint(self):
        content = """
        #[derive(Accounts)]
        pub struct Pay<'info> {
            /// CHECK: any recipient
            pub recipient: UncheckedAccount<'info>,
            pub payer: Signer<'info>,
        }
        """
        findings = run_detector(self.detector, content)
        assert [f.message for f in findings] == [
            "Unchecked account 'recipient' in 'Pay' has no validating constraint"
        ]

    def test_ignores_data_structs(self):
        content = """
        #[account]
        pub struct Vault {
            pub authority: Pubkey,
        }
        """
        assert run_detector(self.detector, content) == []


# ─── PLU-006: Arithmetic overflow ───────────────────────────────────

class TestArithmeticOverflow:
    def setup_method(self):
        self.detector = ArithmeticOverflowDetector()

    def test_detects_unchecked_operators(self):
        content = read_test_file("vulnerable", "arithmetic.rs")
        findings = run_detector(self.detector, content)
        messages = sorted(f.message for f in findings)
        assert messages == [
            "Potential overflow in unchecked addition ('+') in 'deposit'",
            "Potential overflow in unchecked compound subtraction ('-=') in 'fee'",
            "Potential overflow in unchecked multiplication ('*') in 'fee'",
        ]
        assert all(f.severity == "High" for f in findings)

    def test_reports_operator_position(self):
        content = read_test_file("vulnerable", "arithmetic.rs")
        findings = run_detector(self.detector, content)
        addition = [f for f in findings if "'+'" in f.message][0]
        assert (addition.line, addition.column) == locate(content, "+ amount")

    def test_silent_when_overflow_checks_enabled(self):
        content = read_test_file("vulnerable", "arithmetic.rs")
        assert run_detector(self.detector, content, overflow_checks=True) == []

    def test_ignores_checked_math(self):
        content = read_test_file("safe", "anchor_vault.rs")
        assert run_detector(self.detector, content) == []

    def test_ignores_unary_deref_and_float(self):
        content = """
        pub fn misc(values: &[u64], amount: &u64) -> i64 {
            let total = values.iter().map(|v| *v).count();
            let copy = *amount;
            let offset = -1;
            let ratio = 0.5 * 2.0;
            offset
        }
        """
        assert run_detector(self.detector, content) == []


# ─── PLU-007: Large integer literal ─────────────────────────────────

class TestLargeIntegerLiteral:
    def setup_method(self):
        self.detector = LargeIntegerLiteralDetector()

    def test_detects_large_constant(self):
        content = read_test_file("vulnerable", "arithmetic.rs")
        findings = run_detector(self.detector, content)
        assert len(findings) == 1
        assert findings[0].severity == "Warning"
        assert findings[0].message == (
            "Integer literal 10_000_000_000 in 'MAX_SUPPLY' is close to or beyond u32::MAX"
        )
        assert (findings[0].line, findings[0].column) == locate(content, "10_000_000_000")

    def test_narrow_suffix_ranges(self):
        content = """
        pub fn limits() {
            let a = 300u8;
            let b = 100u8;
            let c = 0xFFFF_FFFF;
            let d = -128i8;
            let e = 65_535;
        }
        """
        findings = run_detector(self.detector, content)
        assert sorted(f.message for f in findings) == [
            "Integer literal 0xFFFF_FFFF in 'limits' is close to or beyond u32::MAX",
            "Integer literal 300u8 in 'limits' exceeds the range of u8",
        ]


# ─── PLU-008: Non-canonical bump seed ───────────────────────────────

class TestBumpSeedNonCanonical:
    def setup_method(self):
        self.detector = BumpSeedNonCanonicalDetector()

    def test_detects_caller_supplied_bump(self):
        content = read_test_file("vulnerable", "bump_seed.rs")
        findings = run_detector(self.detector, content)
        by_function = {f.message.split("'")[1]: f.severity for f in findings}
        assert by_function == {"derive_vault": "Critical", "withdraw_with_bump": "High"}

    def test_ignores_compared_bump(self):
        content = read_test_file("safe", "canonical_bump.rs")
        assert run_detector(self.detector, content) == []

    def test_anchor_bumps_with_require_eq(self):
        content = """
        pub fn withdraw(ctx: Context<Withdraw>, bump: u8) -> Result<()> {
            let canonical = ctx.bumps.vault;
            let seeds: &[&[u8]] = &[b"vault", &[bump]];
            require_eq!(bump, canonical);
            Ok(())
        }
        """
        assert run_detector(self.detector, content) == []

        findings = run_detector(self.detector, content.replace("require_eq!(bump, canonical);", ""))
        assert len(findings) == 1
        assert findings[0].severity == "High"

    def test_ignores_bump_without_derivation(self):
        content = """
        pub fn store(ctx: Context<Store>, bump: u8) -> Result<()> {
            ctx.accounts.config.bump = bump;
            Ok(())
        }
        """
        assert run_detector(self.detector, content) == []


# ─── PLU-009: Missing is_initialized field ──────────────────────────

class TestMissingIsInitializedField:
    def setup_method(self):
        self.detector = MissingIsInitializedFieldDetector()

    def test_detects_structs_with_unchecked_accounts(self):
        content = read_test_file("regression", "accounts.rs")
        findings = run_detector(self.detector, content)
        assert len(findings) == 2
        assert all(f.severity == "Warning" for f in findings)
        assert {f.line for f in findings} == {
            locate(content, "struct Deposit")[0],
            locate(content, "struct Withdraw")[0],
        }

    def test_independent_of_field_order(self):
        fields = [
            "    /// CHECK: owned by this program\n"
            "    #[account(owner = crate::ID)]\n"
            "    pub escrow: AccountInfo<'info>,\n",
            "    pub owner: Signer<'info>,\n",
        ]
        for ordered in (fields, list(reversed(fields))):
            content = "#[derive(Accounts)]\npub struct Withdraw<'info> {\n" + "".join(ordered) + "}\n"
            findings = run_detector(self.detector, content)
            assert len(findings) == 1

    def test_detects_data_struct_of_unprotected_initializer(self):
        content = read_test_file("vulnerable", "reinit.rs")
        findings = run_detector(self.detector, content)
        assert len(findings) == 1
        assert "'Vault'" in findings[0].message

    def test_ignores_guarded_and_protected_structs(self):
        assert run_detector(self.detector, read_test_file("safe", "reinit_guarded.rs")) == []
        assert run_detector(self.detector, read_test_file("safe", "anchor_vault.rs")) == []


# ─── PLU-010: Associated token account init mode ────────────────────

class TestAtaInitMode:
    def setup_method(self):
        self.detector = AtaInitModeDetector()

    def test_detects_ata_created_with_init(self):
        content = read_test_file("vulnerable", "account_constraints.rs")
        findings = run_detector(self.detector, content)
        assert len(findings) == 1
        assert findings[0].severity == "Critical"
        assert (findings[0].line, findings[0].column) == locate(content, "user_ata:")

    def test_ignores_init_if_needed(self):
        content = read_test_file("safe", "ata_init_if_needed.rs")
        assert run_detector(self.detector, content) == []

    def test_detects_ata_by_field_name(self):
        content = """
        #[derive(Accounts)]
        pub struct Setup<'info> {
            #[account(init, payer = user, token::mint = mint, token::authority = user)]
            pub vault_ata: Account<'info, TokenAccount>,
            #[account(init, payer = user, token::mint = mint, token::authority = user)]
            pub vault_tokens: Account<'info, TokenAccount>,
        }
        """
        findings = run_detector(self.detector, content)
        assert [f.message.split("'")[1] for f in findings] == ["vault_ata"]

    @pytest.mark.parametrize("field", ["user_token_account", "tokenAccount", "userTokenAccount"])
    def test_detects_token_account_names(self, field):
        content = f"""
        #[derive(Accounts)]
        pub struct Setup<'info> {{
            #[account(init, payer = user, token::mint = mint, token::authority = user)]
            pub {field}: Account<'info, TokenAccount>,
        }}
        """
        findings = run_detector(self.detector, content)
        assert len(findings) == 1
        assert f"'{field}'" in findings[0].message


# ─── PLU-011: Generic CPI validation hint ───────────────────────────

class TestGenericCpiValidationHint:
    def setup_method(self):
        self.detector = GenericCpiValidationHintDetector()

    def test_fires_alongside_arbitrary_cpi(self):
        content = read_test_file("vulnerable", "arbitrary_cpi.rs")
        findings = run_detector(self.detector, content)
        assert len(findings) == 1
        assert findings[0].severity == "Warning"
        assert (findings[0].line, findings[0].column) == locate(content, "invoke(&ix")

    def test_still_fires_on_guard_far_from_call(self):
        """The guard in guarded_cpi.rs is more than three lines before the call."""
        content = read_test_file("safe", "guarded_cpi.rs")
        assert len(run_detector(self.detector, content)) == 1

    def test_ignores_call_after_require(self):
        content = read_test_file("safe", "anchor_vault.rs")
        assert run_detector(self.detector, content) == []


# ─── PLU-012 .. PLU-014: Account constraint hygiene ─────────────────

class TestConstraintHygiene:
    def test_hardcoded_bump(self):
        content = read_test_file("vulnerable", "account_constraints.rs")
        findings = run_detector(HardcodedBumpSeedDetector(), content)
        assert [f.message for f in findings] == [
            "Field 'treasury' in 'OpenPosition' uses hardcoded bump 254"
        ]
        assert findings[0].severity == "High"

    def test_stored_bump_is_not_hardcoded(self):
        content = read_test_file("safe", "anchor_vault.rs")
        assert run_detector(HardcodedBumpSeedDetector(), content) == []

    def test_init_if_needed_usage(self):
        content = read_test_file("vulnerable", "account_constraints.rs")
        findings = run_detector(InitIfNeededUsageDetector(), content)
        assert [f.message for f in findings] == [
            "Field 'position' in 'OpenPosition' uses init_if_needed"
        ]
        assert findings[0].severity == "Warning"

    def test_space_without_init(self):
        content = read_test_file("vulnerable", "account_constraints.rs")
        findings = run_detector(SpaceWithoutInitDetector(), content)
        assert [f.message.split("'")[1] for f in findings] == ["config"]

    def test_space_with_init(self):
        content = read_test_file("safe", "anchor_vault.rs")
        assert run_detector(SpaceWithoutInitDetector(), content) == []


# ─── PLU-015: Error enum note ───────────────────────────────────────

class TestErrorEnum:
    def setup_method(self):
        self.detector = ErrorEnumDetector()

    def test_notes_error_code_enum(self):
        content = read_test_file("safe", "anchor_vault.rs")
        findings = run_detector(self.detector, content)
        assert len(findings) == 1
        assert findings[0].severity == "Info"
        assert findings[0].category == "ErrorEnum"
        assert "'VaultError'" in findings[0].message
        assert (findings[0].line, findings[0].column) == locate(content, "VaultError {")

    def test_ignores_plain_enum(self):
        content = """
        pub enum Side {
            Bid,
            Ask,
        }
        """
        assert run_detector(self.detector, content) == []


# ─── PLU-016: Cast to AccountInfo ───────────────────────────────────

class TestAccountInfoCast:
    def setup_method(self):
        self.detector = AccountInfoCastDetector()

    def test_detects_pointer_cast(self):
        content = """
        pub fn peek(addr: usize) -> u64 {
            let info = unsafe { &*(addr as *const AccountInfo) };
            info.lamports()
        }
        """
        findings = run_detector(self.detector, content)
        assert len(findings) == 1
        assert findings[0].severity == "Warning"
        assert (findings[0].line, findings[0].column) == locate(content, "as *const AccountInfo")

    def test_ignores_conversions_without_cast(self):
        content = read_test_file("safe", "anchor_vault.rs")
        assert run_detector(self.detector, content) == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
