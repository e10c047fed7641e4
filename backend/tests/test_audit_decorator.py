import pytest
from flask import Flask
from werkzeug.exceptions import NotFound
from mutka import get_db
from mutka.decorators.audit import audit_log
from mutka.models.audit import AuditLog


def _boom(*_args):
    raise RuntimeError('audit helper broke')


def test_failing_snapshot_and_meta_do_not_fail_the_handler(app_context: Flask):
    @audit_log('TEST.AUDIT.GUARD', module='test', entity='Thing', entity_id_key='id',
               diff_keys=['name'], pre_fetch=_boom, meta_builder=_boom)
    def handler():
        return {'id': 7, 'name': 'after'}, 201

    with app_context.test_request_context('/things/7', method='PUT'):
        assert handler() == ({'id': 7, 'name': 'after'}, 201)

    row = get_db().query(AuditLog).filter_by(action='TEST.AUDIT.GUARD').one()
    assert row.entity_id == '7'
    assert row.meta == {}
    assert row.before is None


def test_snapshot_abort_still_reaches_the_caller(app_context: Flask):
    def missing(*_args):
        raise NotFound()

    @audit_log('TEST.AUDIT.MISSING', diff_keys=['name'], pre_fetch=missing)
    def handler():
        return {'id': 1}

    with app_context.test_request_context('/things/1', method='PUT'):
        with pytest.raises(NotFound):
            handler()
