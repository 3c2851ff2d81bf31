'''
Unit tests for tool schema normalization.
'''

from __future__ import annotations

from llmwire.drivers import enforce_strict_object_schema, normalize_schema_for_provider


class TestNormalizeSchema:
    '''
    Test provider specific schema cleanup.
    '''

    def test_gemini_drops_unsupported_keywords(self) -> None:
        schema = {
            '$schema': 'x',
            'type': 'object',
            'additionalProperties': False,
            '$defs': {'a': {}},
            'properties': {
                'tags': {'type': 'array', 'items': {'type': 'string', 'examples': ['a']}},
            },
        }

        result = normalize_schema_for_provider(schema, 'gemini')

        assert result == {
            'type': 'object',
            'properties': {'tags': {'type': 'array', 'items': {'type': 'string'}}},
        }
        assert '$schema' in schema

    def test_gemini_collapses_nullable_any_of(self) -> None:
        schema = {'anyOf': [{'type': 'integer'}, {'type': 'null'}], 'description': 'count'}

        assert normalize_schema_for_provider(schema, 'gemini') == {
            'type': 'integer',
            'description': 'count',
            'nullable': True,
        }

    def test_openai_keeps_additional_properties(self) -> None:
        schema = {'$id': 'x', 'type': 'object', 'additionalProperties': True}

        assert normalize_schema_for_provider(schema, 'openai') == {'type': 'object', 'additionalProperties': True}


class TestStrictObjectSchema:
    '''
    Test strict mode enforcement.
    '''

    def test_nested_objects(self) -> None:
        schema = {
            'type': 'object',
            'properties': {
                'items': {
                    'type': 'array',
                    'items': {'type': 'object', 'properties': {'id': {'type': 'string'}}},
                },
                'choice': {'anyOf': [{'type': 'object'}, {'type': 'string'}]},
            },
            'required': ['items'],
        }

        result = enforce_strict_object_schema(schema)

        assert result['required'] == ['items', 'choice']
        assert result['additionalProperties'] is False
        item = result['properties']['items']['items']
        assert item['required'] == ['id']
        assert item['additionalProperties'] is False
        assert result['properties']['choice']['anyOf'][0] == {
            'type': 'object',
            'properties': {},
            'additionalProperties': False,
            'required': [],
        }
