import torch

from pyGADGETS import ScoringConfig, build_weight_lookup, family_weights


def test_weight_lookup_powers():
    assert build_weight_lookup(4, 2).tolist() == [1.0, 2.0, 4.0, 8.0, 16.0]
    assert build_weight_lookup(2, 3).tolist() == [1.0, 3.0, 9.0]


def test_weight_lookup_monotone_for_base_above_one():
    lookup = build_weight_lookup(18, 2)
    assert bool(torch.all(lookup[1:] >= lookup[:-1]))


def test_weighted_difference_index_and_votes(small_store):
    case_sub, comp_sub = small_store.columns([0, 1, 2])
    fw = family_weights(case_sub, comp_sub, ScoringConfig())
    # family 1: case (2,1,1) comp (0,1,0) -> 2 different, 1 both-one -> x = 2*2 + 1
    assert fw.index[0].item() == 5
    assert fw.weights[0].item() == 32.0
    assert fw.votes[0].tolist() == [1.0, 0.0, 1.0]
    # family 6: case (0,1,2) comp (1,1,1) -> 2 different, 1 both-one
    assert fw.votes[5].tolist() == [-1.0, 0.0, 1.0]


def test_missing_family_excluded(small_store):
    case_sub, comp_sub = small_store.columns([0, 3])
    fw = family_weights(case_sub, comp_sub, ScoringConfig())
    assert not fw.complete[4]
    assert not fw.informative[4]
    assert fw.votes[4].tolist() == [0.0, 0.0]


def test_zero_index_family_not_informative():
    case_sub = torch.tensor([[0, 2], [1, 0]], dtype=torch.int8)
    comp_sub = torch.tensor([[0, 2], [0, 0]], dtype=torch.int8)
    fw = family_weights(case_sub, comp_sub, ScoringConfig())
    assert fw.index.tolist() == [0, 2]
    assert fw.weights[0].item() == 1.0
    assert fw.informative.tolist() == [False, True]


def test_swapping_one_family_flips_its_vote_and_keeps_weight(small_store):
    case_sub, comp_sub = small_store.columns([0, 1, 2, 3])
    before = family_weights(case_sub, comp_sub, ScoringConfig())
    case_sw, comp_sw = case_sub.clone(), comp_sub.clone()
    case_sw[2], comp_sw[2] = comp_sub[2], case_sub[2]
    after = family_weights(case_sw, comp_sw, ScoringConfig())
    assert after.weights[2].item() == before.weights[2].item()
    assert torch.equal(after.votes[2], -before.votes[2])
