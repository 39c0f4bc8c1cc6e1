import logging

from fastapi import FastAPI
from fastapi.testclient import TestClient
from pydantic import BaseModel, Field

from shoply import services
from shoply.exceptions import APIException, ResourceNotFoundException, register_exception_handlers
from shoply.main import app


class _Widget(BaseModel):
    name: str = Field(min_length=3)


def _app() -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)

    @app.get('/boom')
    def boom():
        raise RuntimeError('database on fire')

    @app.get('/missing')
    def missing():
        raise ResourceNotFoundException('Widget', 'widgetId', 7)

    @app.get('/rule')
    def rule():
        raise APIException('Widgets are sold out')

    @app.get('/model')
    def model():
        _Widget(name='x')

    return app


def test_unexpected_errors_hide_details():
    client = TestClient(_app(), raise_server_exceptions=False)
    r = client.get('/boom')
    assert r.status_code == 500
    assert r.json() == {'message': 'An unexpected error occurred', 'success': False}


def test_domain_exceptions_map_to_envelope():
    client = TestClient(_app())
    r = client.get('/missing')
    assert r.status_code == 404
    assert r.json() == {'message': 'Widget not found with widgetId: 7', 'success': False}

    r = client.get('/rule')
    assert r.status_code == 400
    assert r.json() == {'message': 'Widgets are sold out', 'success': False}


def test_model_validation_inside_handler():
    client = TestClient(_app())
    r = client.get('/model')
    assert r.status_code == 400
    assert r.json()['message'] == 'Validation Failed'
    assert 'name' in r.json()['errors']


def test_unknown_route_uses_envelope(client):
    r = client.get('/api/nowhere')
    assert r.status_code == 404
    assert r.json() == {'message': 'Not Found', 'success': False}


def test_malformed_path_parameter(client):
    r = client.get('/api/public/categories/abc/products')
    assert r.status_code == 400
    assert set(r.json()['errors']) == {'category_id'}


def test_request_id_is_echoed(client):
    r = client.get('/health', headers={'X-Request-ID': 'abc123'})
    assert r.status_code == 200
    assert r.json() == {'status': 'ok'}
    assert r.headers['X-Request-ID'] == 'abc123'


def test_failed_requests_are_logged(monkeypatch, caplog):
    def explode(self, **kwargs):
        raise RuntimeError('database on fire')

    monkeypatch.setattr(services.CategoryService, 'get_all_categories', explode)
    caplog.set_level(logging.INFO, logger='shoply.api')
    failing = TestClient(app, raise_server_exceptions=False)

    r = failing.get('/api/public/categories', headers={'X-Request-ID': 'req-42'})
    assert r.status_code == 500
    assert r.json() == {'message': 'An unexpected error occurred', 'success': False}
    failed = [rec for rec in caplog.records if rec.getMessage().startswith('request_failed')]
    assert len(failed) == 1
    assert '"request_id": "req-42"' in failed[0].getMessage()
    assert '"path": "/api/public/categories"' in failed[0].getMessage()
