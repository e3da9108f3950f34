"""
Folio API Models

Pydantic request/response models live in ``*_models.py``; ORM tables live
in the ``db`` subpackage.
"""
