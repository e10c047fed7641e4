from mutka.utils.fsm import TransitionValidator
from werkzeug.exceptions import BadRequest
import pytest


def test_transition_validator_allows_valid():
    fsm = TransitionValidator({'A': {'B'}, 'B': set()})
    assert fsm.assert_can_transition('A', 'B') is True
    assert fsm.can_transition('A', 'B')
    assert not fsm.can_transition('B', 'A')


def test_transition_validator_blocks_invalid():
    fsm = TransitionValidator({'A': {'B'}, 'B': set()})
    with pytest.raises(BadRequest):
        fsm.assert_can_transition('A', 'C')


def test_deal_transitions_published_in_openapi(client):
    body = client.get('/openapi.json').get_json()
    schemas = body['components']['schemas']
    assert 'PENDING_PAYMENT' in schemas['AutoDeal']['x-transitions']
    assert 'DEFAULT' in schemas['FinanceDeal']['x-transitions']
    assert 'pledged' in schemas['Asset']['x-transitions']
