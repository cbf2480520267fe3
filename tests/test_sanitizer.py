"""Unit tests for resource sanitization."""

import copy
import unittest

from vapi_cloner.core.models import ResourceKind
from vapi_cloner.core.sanitizer import (
    ASSISTANT_READONLY_FIELDS,
    TOOL_READONLY_FIELDS,
    readonly_fields_for,
    remove_empty_fields,
    sanitize,
    sanitize_assistant,
    sanitize_resource,
    sanitize_tool,
    validate_assistant,
    validate_resource,
    validate_tool,
)


def _assistant():
    return {
        'id': 'asst_123',
        'orgId': 'org_456',
        'createdAt': '2024-01-01T00:00:00Z',
        'updatedAt': '2024-01-02T00:00:00Z',
        'name': 'Test Assistant',
        'owner': {'id': 'user_789'},
        'isServerUrlSecretSet': True,
        'phoneNumbers': ['+1234567890'],
        'billing': {'plan': 'pro'},
        'lastModifiedBy': 'user_789',
        '_rev': 'rev_1',
        '_id': 'internal_id',
        'model': {
            'provider': 'openai',
            'model': 'gpt-4',
            'temperature': 0.7
        },
        'firstMessage': 'Hello!',
        'metadata': {'version': '1.0'}
    }


def _tool():
    return {
        'id': 'tool_123',
        'orgId': 'org_456',
        'createdAt': '2024-01-01T00:00:00Z',
        'updatedAt': '2024-01-02T00:00:00Z',
        'type': 'function',
        'name': 'Test Tool',
        'description': 'A test tool',
        'owner': {'id': 'user_789'},
        'lastModifiedBy': 'user_789',
        '_rev': 'rev_1',
        '_id': 'internal_id',
        'function': {
            'name': 'testFunction',
            'parameters': {
                'type': 'object',
                'properties': {'param1': {'type': 'string'}}
            }
        }
    }


def _collect_keys(value, keys=None):
    keys = set() if keys is None else keys
    if isinstance(value, dict):
        for key, item in value.items():
            keys.add(key)
            _collect_keys(item, keys)
    elif isinstance(value, list):
        for item in value:
            _collect_keys(item, keys)
    return keys


class TestSanitizeAssistant(unittest.TestCase):

    def test_removes_readonly_fields(self):
        sanitized = sanitize_assistant(_assistant())
        self.assertFalse(ASSISTANT_READONLY_FIELDS & set(sanitized))

    def test_keeps_valid_fields(self):
        sanitized = sanitize_assistant(_assistant())
        self.assertEqual(sanitized['name'], 'Test Assistant')
        self.assertEqual(sanitized['model'], {'provider': 'openai', 'model': 'gpt-4', 'temperature': 0.7})
        self.assertEqual(sanitized['firstMessage'], 'Hello!')
        self.assertEqual(sanitized['metadata'], {'version': '1.0'})

    def test_injects_tool_ids(self):
        sanitized = sanitize_assistant(_assistant(), ['tool_1', 'tool_2'])
        self.assertEqual(sanitized['model']['toolIds'], ['tool_1', 'tool_2'])
        self.assertEqual(sanitized['model']['provider'], 'openai')

    def test_creates_model_when_missing(self):
        sanitized = sanitize_assistant({'name': 'Test', 'model': None}, ['tool_1'])
        self.assertEqual(sanitized['model']['toolIds'], ['tool_1'])
        self.assertIn('provider', sanitized['model'])

    def test_replaces_existing_tool_ids(self):
        assistant = _assistant()
        assistant['model']['toolIds'] = ['stale']
        sanitized = sanitize_assistant(assistant, ['fresh'])
        self.assertEqual(sanitized['model']['toolIds'], ['fresh'])

    def test_does_not_modify_original(self):
        original = _assistant()
        snapshot = copy.deepcopy(original)
        sanitize_assistant(original, ['tool_1'])
        self.assertEqual(original, snapshot)

    def test_removes_empty_objects_and_arrays(self):
        sanitized = sanitize_assistant({
            'name': 'Test',
            'model': {'provider': 'openai', 'model': 'gpt-4'},
            'metadata': {},
            'clientMessages': [],
            'voice': None
        })
        self.assertNotIn('metadata', sanitized)
        self.assertNotIn('clientMessages', sanitized)
        self.assertNotIn('voice', sanitized)

    def test_object_of_only_readonly_fields_is_omitted(self):
        sanitized = sanitize_assistant({
            'name': 'Test',
            'artifactPlan': {'id': 'x', 'createdAt': 'now'},
            'credentials': [{'_id': 'a'}, {'orgId': 'b'}]
        })
        self.assertEqual(sanitized, {'name': 'Test'})

    def test_keeps_falsy_scalars(self):
        sanitized = sanitize_assistant({'name': 'Test', 'backchannelingEnabled': False, 'silenceTimeoutSeconds': 0})
        self.assertIs(sanitized['backchannelingEnabled'], False)
        self.assertEqual(sanitized['silenceTimeoutSeconds'], 0)


class TestSanitizeTool(unittest.TestCase):

    def test_removes_readonly_fields(self):
        sanitized = sanitize_tool(_tool())
        self.assertFalse(TOOL_READONLY_FIELDS & set(sanitized))

    def test_keeps_valid_fields(self):
        sanitized = sanitize_tool(_tool())
        self.assertEqual(sanitized['type'], 'function')
        self.assertEqual(sanitized['name'], 'Test Tool')
        self.assertEqual(sanitized['description'], 'A test tool')
        self.assertEqual(sanitized['function']['name'], 'testFunction')

    def test_handles_nested_structures(self):
        sanitized = sanitize_tool({
            'type': 'function',
            'name': 'Complex Tool',
            'function': {
                'name': 'complex',
                'parameters': {
                    'type': 'object',
                    'properties': {
                        'nested': {'type': 'object', 'properties': {'deep': {'type': 'string'}}}
                    }
                }
            },
            'messages': [
                {'type': 'request-start', 'content': 'Starting...'},
                {'type': 'request-complete', 'content': 'Done!'}
            ]
        })
        self.assertIn('nested', sanitized['function']['parameters']['properties'])
        self.assertEqual(len(sanitized['messages']), 2)

    def test_arrays_of_objects_with_readonly_fields(self):
        sanitized = sanitize_tool({
            'type': 'function',
            'messages': [
                {'type': 'request-start', 'id': 'should_be_removed', 'content': 'Hello'},
                {'type': 'request-end', 'content': 'Bye'}
            ]
        })
        self.assertEqual(sanitized['messages'][0], {'type': 'request-start', 'content': 'Hello'})

    def test_tool_keeps_assistant_only_fields(self):
        sanitized = sanitize_tool({'type': 'function', 'billing': {'plan': 'x'}})
        self.assertEqual(sanitized['billing'], {'plan': 'x'})


class TestGenericSanitize(unittest.TestCase):

    def test_removes_forbidden_fields_at_every_depth(self):
        forbidden = {'id', 'orgId', 'createdAt'}
        resource = {
            'id': 1, 'orgId': 2, 'createdAt': 3, 'keep': 'yes',
            'child': {'id': 4, 'orgId': 5, 'createdAt': 6, 'keep': 'nested'},
            'items': [{'id': 7, 'value': [1, 2]}]
        }

        sanitized = sanitize(resource, forbidden)

        self.assertFalse(forbidden & _collect_keys(sanitized))
        self.assertEqual(sanitized, {
            'keep': 'yes',
            'child': {'keep': 'nested'},
            'items': [{'value': [1, 2]}]
        })

    def test_nested_readonly_field_in_model(self):
        sanitized = sanitize_assistant({
            'name': 'Test',
            'model': {'provider': 'openai', 'nested': {'id': 'gone', 'validField': 'stays'}}
        })
        self.assertEqual(sanitized['model']['nested'], {'validField': 'stays'})

    def test_empty_input_gives_empty_dict(self):
        self.assertEqual(sanitize({'id': 'x'}, {'id'}), {})

    def test_remove_empty_fields_returns_none_for_empty_containers(self):
        self.assertIsNone(remove_empty_fields({}))
        self.assertIsNone(remove_empty_fields([{}, [], None]))
        self.assertEqual(remove_empty_fields({'a': [{}, 1]}), {'a': [1]})

    def test_sanitize_resource_uses_kind_field_set(self):
        self.assertEqual(readonly_fields_for(ResourceKind.TOOL), TOOL_READONLY_FIELDS)
        self.assertEqual(readonly_fields_for("assistant"), ASSISTANT_READONLY_FIELDS)
        sanitized = sanitize_resource(ResourceKind.ASSISTANT, {'name': 'A', 'phoneNumbers': ['1']}, ['t1'])
        self.assertEqual(sanitized['model']['toolIds'], ['t1'])
        self.assertNotIn('phoneNumbers', sanitized)


class TestValidation(unittest.TestCase):

    def test_assistant_requires_name(self):
        self.assertTrue(validate_assistant({'name': 'Test Assistant'}))
        self.assertFalse(validate_assistant({}))
        self.assertFalse(validate_assistant({'name': ''}))
        self.assertFalse(validate_assistant({'name': 3}))

    def test_tool_requires_type(self):
        self.assertTrue(validate_tool({'type': 'function'}))
        self.assertFalse(validate_tool({}))
        self.assertFalse(validate_tool({'type': ''}))

    def test_validate_resource_dispatches_on_kind(self):
        self.assertTrue(validate_resource(ResourceKind.TOOL, {'type': 'function'}))
        self.assertFalse(validate_resource(ResourceKind.ASSISTANT, {'type': 'function'}))


if __name__ == "__main__":
    unittest.main()
