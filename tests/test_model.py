"""Tests for the structural model builder."""

import os
import sys
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pluton.model import (
    AccountStruct,
    ConstDecl,
    ErrorEnum,
    FunctionDecl,
    ParseFailure,
    StructuralModel,
    build_model,
    make_type_ref,
    mask_source,
    split_top_level,
)

PROGRAM = """use anchor_lang::prelude::*;

#[program]
pub mod demo {
    use super::*;

    /// Creates the vault.
    pub fn initialize(ctx: Context<Initialize>, bump: u8) -> Result<()> {
        Ok(())
    }
}

#[derive(Accounts)]
pub struct Initialize<'info> {
    #[account(init, payer = user, space = 8 + 32)]
    pub vault: Account<'info, Vault>,
    #[account(mut)]
    pub user: Signer<'info>,
    /// CHECK: only used as a signer seed
    pub authority: UncheckedAccount<'info>,
}

#[account]
pub struct Vault {
    pub is_initialized: bool,
    pub owner: Pubkey,
}

#[error_code]
pub enum VaultError {
    #[msg("Vault already initialized")]
    AlreadyInitialized,
    Overflow,
}

pub const MAX_DEPOSIT: u64 = 1_000;

impl Vault {
    pub fn reset(&mut self) {
        self.owner = Pubkey::default();
    }
}
"""


def build(text, path="lib.rs", **limits):
    model = build_model(path, text, **limits)
    assert isinstance(model, StructuralModel), model
    return model


# ─── Declarations ───────────────────────────────────────────────────

class TestDeclarations:
    def setup_method(self):
        self.model = build(PROGRAM)

    def test_declarations_in_source_order(self):
        kinds = [(d.kind, d.name) for d in self.model.declarations]
        assert kinds == [
            ("function", "initialize"),
            ("account_struct", "Initialize"),
            ("account_struct", "Vault"),
            ("error_enum", "VaultError"),
            ("const", "MAX_DEPOSIT"),
            ("function", "reset"),
        ]

    def test_program_entry_function(self):
        fn = self.model.functions()[0]
        assert isinstance(fn, FunctionDecl)
        assert fn.program_entry
        assert fn.scope == ("demo",)
        assert (fn.line, fn.column) == (8, 12)
        assert [p.name for p in fn.parameters] == ["ctx", "bump"]
        assert fn.context_struct == "Initialize"
        assert fn.param("bump").type_ref.is_integer
        assert [a.args for a in fn.attributes if a.name == "doc"] == ["Creates the vault."]

    def test_impl_method(self):
        fn = self.model.functions()[1]
        assert fn.scope == ("impl Vault",)
        assert not fn.program_entry
        assert fn.parameters[0].name == "self"
        assert "self.owner = Pubkey::default();" in fn.body_text

    def test_accounts_struct_fields(self):
        struct = self.model.find_struct("Initialize")
        assert isinstance(struct, AccountStruct)
        assert struct.role == "accounts"
        assert [f.name for f in struct.fields] == ["vault", "user", "authority"]
        vault = struct.field("vault")
        assert vault.account_tokens() == ["init", "payer = user", "space = 8 + 32"]
        assert vault.type_ref.inner_type == "Vault"
        assert (vault.line, vault.column) == (16, 9)
        authority = struct.field("authority")
        assert authority.type_ref.generic_account
        assert authority.docs == "CHECK: only used as a signer seed"

    def test_data_struct_guard_field(self):
        vault = self.model.find_struct("Vault")
        assert vault.role == "data"
        assert vault.guard_field().name == "is_initialized"
        assert self.model.find_struct("Initialize").guard_field() is None

    def test_error_enum_variants(self):
        enum = self.model.of_kind("error_enum")[0]
        assert isinstance(enum, ErrorEnum)
        assert enum.variants == ("AlreadyInitialized", "Overflow")

    def test_const_literal(self):
        const = self.model.of_kind("const")[0]
        assert isinstance(const, ConstDecl)
        assert const.literal_text == "1_000"
        assert const.type_ref.base == "u64"
        assert (const.literal_line, const.literal_column) == (36, 30)

    def test_plain_structs_and_enums_are_not_declarations(self):
        model = build("pub struct Point { x: u64 }\nenum Side { Buy, Sell }\n")
        assert model.declarations == ()

    def test_function_body_position(self):
        model = build("fn f() {\n    let x = 1;\n}\n")
        fn = model.functions()[0]
        offset = fn.body_text.index("let")
        assert fn.position(offset) == (2, 5)

    def test_empty_file(self):
        model = build("")
        assert model.declarations == ()


# ─── Types and text helpers ─────────────────────────────────────────

class TestTypeRefs:
    @pytest.mark.parametrize("text, base, generic, program", [
        ("Account<'info, Vault>", "Account", False, False),
        ("&'a AccountInfo<'info>", "AccountInfo", True, False),
        ("UncheckedAccount<'info>", "UncheckedAccount", True, False),
        ("Box<Account<'info, Vault>>", "Account", False, False),
        ("Program<'info, Token>", "Program", False, True),
        ("anchor_lang::prelude::Signer<'info>", "Signer", False, False),
    ])
    def test_classification(self, text, base, generic, program):
        type_ref = make_type_ref(text)
        assert type_ref.base == base
        assert type_ref.generic_account is generic
        assert type_ref.program_handle is program

    def test_inner_type(self):
        assert make_type_ref("Context<Initialize<'info>>").inner_type == "Initialize"
        assert make_type_ref("u64").inner_type is None

    def test_split_top_level_ignores_nested_commas(self):
        text = "init, seeds = [b\"a\", user.key().as_ref()], bump"
        parts = [text[a:b].strip() for a, b in split_top_level(text)]
        assert parts == ["init", "seeds = [b\"a\", user.key().as_ref()]", "bump"]


class TestMasking:
    def test_comments_blanked_strings_kept(self):
        text = 'let s = "// not a comment"; // real comment'
        code, skeleton, _ = mask_source(text)
        assert len(code) == len(text) == len(skeleton)
        assert '"// not a comment"' in code
        assert "real comment" not in code
        assert "not a comment" not in skeleton

    def test_lifetimes_are_not_char_literals(self):
        text = "fn f<'a>(x: &'a str) -> char { 'x' }"
        _, skeleton, _ = mask_source(text)
        assert "<'a>" in skeleton
        assert "'x'" not in skeleton

    def test_raw_strings_and_nested_comments(self):
        text = 'const S: &str = r#"say "hi" {"#; /* outer /* inner */ still */ fn after() {}'
        model = build(text)
        assert [d.name for d in model.declarations] == ["S", "after"]

    def test_doc_comments_collected(self):
        _, _, docs = mask_source("/// first\n//// not doc\nfn f() {}\n")
        assert [d[1] for d in docs] == ["first"]


# ─── Parse failures ─────────────────────────────────────────────────

class TestParseFailures:
    def test_unclosed_brace(self):
        failure = build_model("bad.rs", "pub struct Broken {\n    a: u8,\n")
        assert failure == ParseFailure("unclosed delimiter '{'", 1, 19)

    def test_mismatched_delimiter(self):
        failure = build_model("bad.rs", "fn f() {\n    (]\n}\n")
        assert isinstance(failure, ParseFailure)
        assert failure.message == "unexpected closing delimiter ']'"
        assert (failure.line, failure.column) == (2, 6)

    def test_unterminated_string(self):
        failure = build_model("bad.rs", 'fn f() { let s = "abc; }')
        assert isinstance(failure, ParseFailure)
        assert failure.message == "unterminated string literal"

    def test_keyword_without_name(self):
        failure = build_model("bad.rs", "pub fn (x: u8) {}")
        assert isinstance(failure, ParseFailure)
        assert failure.message == "expected identifier after 'fn'"

    def test_file_size_budget(self):
        failure = build_model("big.rs", "fn f() {}\n" * 10, max_file_bytes=16)
        assert isinstance(failure, ParseFailure)
        assert failure.message.startswith("parse budget exceeded")

    def test_declaration_budget(self):
        failure = build_model("many.rs", "fn a() {}\nfn b() {}\nfn c() {}\n", max_declarations=2)
        assert isinstance(failure, ParseFailure)
        assert "more than 2 declarations" in failure.message


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
