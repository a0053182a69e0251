from importlib import import_module

modules = [
    'auth',
    'users',
    'tokens',
    'epics',
    'user_stories',
    'acceptance_criteria',
    'requirements',
    'config',
    'steering_documents',
    'navigation',
    'search',
    'audit',
    'comments',
]

for m in modules:
    import_module(f'.{m}', __name__)

__all__ = modules
