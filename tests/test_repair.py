"""Tests for LaTeX repair and validation."""

import random

from inktex.models.decoder.repair import (
    balance_braces,
    fix_arg_arity,
    repair_latex,
    is_complete_expression,
    is_structurally_valid,
    normalize_tokens,
    select_candidate,
)


def test_balance_closes_open_braces():
    assert balance_braces(['x', '^', '{', '2']) == ['x', '^', '{', '2', '}']


def test_balance_drops_unmatched_close():
    assert balance_braces(['x', '}', '+', 'y']) == ['x', '+', 'y']


def test_balance_keeps_balanced_input():
    tokens = ['\\frac', '{', 'a', '}', '{', 'b', '}']
    assert balance_braces(tokens) == tokens


def test_balance_random_sequences_are_balanced():
    rng = random.Random(0)
    alphabet = ['{', '}', 'x', '+', '2']
    for _ in range(200):
        tokens = [rng.choice(alphabet) for _ in range(rng.randint(0, 20))]
        result = balance_braces(tokens)
        depth = 0
        for t in result:
            depth += {'{': 1, '}': -1}.get(t, 0)
            assert depth >= 0
        assert depth == 0
        # Non-brace tokens survive in order
        assert [t for t in result if t not in '{}'] == [t for t in tokens if t not in '{}']


def test_frac_extra_argument_removed():
    tokens = ['\\frac', '{', 'a', '}', '{', 'b', '}', '{', 'c', '}']
    assert fix_arg_arity(tokens, '\\frac', 2) == ['\\frac', '{', 'a', '}', '{', 'b', '}']


def test_sqrt_extra_argument_removed():
    tokens = ['\\sqrt', '{', 'x', '}', '{', 'y', '}', '+', '1']
    assert fix_arg_arity(tokens, '\\sqrt', 1) == ['\\sqrt', '{', 'x', '}', '+', '1']


def test_bare_token_counts_as_argument():
    tokens = ['\\frac', '1', '2', '{', '3', '}']
    assert fix_arg_arity(tokens, '\\frac', 2) == ['\\frac', '1', '2']


def test_nested_groups_kept_whole():
    tokens = ['\\frac', '{', '\\frac', '{', 'a', '}', '{', 'b', '}', '}', '{', 'c', '}']
    assert fix_arg_arity(tokens, '\\frac', 2) == tokens


def test_repair_latex_balances_then_fixes_arity():
    assert repair_latex(['\\sqrt', '{', 'x', '}', '{', 'y']) == ['\\sqrt', '{', 'x', '}']


def test_complete_expression():
    assert is_complete_expression(['x', '+', 'y'])
    assert is_complete_expression(['\\frac', '{', 'a', '}', '{', 'b', '}'])


def test_incomplete_expressions():
    assert not is_complete_expression([])
    assert not is_complete_expression(['\\sum'])
    assert not is_complete_expression(['\\frac', '{', 'a', '}'])
    assert not is_complete_expression(['x', '+', '\\sqrt'])


def test_structurally_valid():
    assert is_structurally_valid('x ^ { 2 }')
    assert is_structurally_valid('\\frac { 1 } { 2 }')


def test_structurally_invalid():
    assert not is_structurally_valid('')
    assert not is_structurally_valid('   ')
    assert not is_structurally_valid('} x {')
    assert not is_structurally_valid('x ^ { 2')
    assert not is_structurally_valid('\\frac { 1 }')


def test_normalize_tokens_braces_bare_arguments():
    assert normalize_tokens(['x', '^', '2']) == ['x', '^', '{', '2', '}']
    assert normalize_tokens(['\\frac', '1', '{', '2', '}']) == ['\\frac', '{', '1', '}', '{', '2', '}']
    assert normalize_tokens(['a', '\\,', 'b']) == ['a', 'b']


def test_select_first_valid_candidate():
    candidates = [['}', '}'], ['x', '+', '1']]
    assert select_candidate(candidates) == (1, 'x + 1')


def test_select_repairs_before_validating():
    idx, latex = select_candidate([['x', '^', '{', '2']])
    assert idx == 0
    assert latex == 'x ^ { 2 }'


def test_select_skips_incomplete_when_required():
    candidates = [['\\frac', '{', '1', '}'], ['y']]
    assert select_candidate(candidates, require_complete=True) == (1, 'y')


def test_select_falls_back_to_best_candidate():
    # The best candidate is incomplete but still passes the validator on its own
    candidates = [['\\sum'], ['\\sqrt']]
    assert select_candidate(candidates, require_complete=True) == (0, '\\sum')


def test_select_returns_empty_when_nothing_validates():
    assert select_candidate([[], ['}']]) == (None, '')
    assert select_candidate([]) == (None, '')
    assert select_candidate([['x']], validator=lambda s: False) == (None, '')


def test_single_symbol_is_complete():
    assert is_complete_expression(['3'])
