# src/async_model_resources/__init__.py

"""
Async Model Resources Library Initialization.

This package provides the generic operations to create, retrieve, update,
merge and delete models (and the elements of their list fields) over a
MongoDB document store, with paginated searches and schema migration.

It initializes a logger with a NullHandler and makes the core components
available at the top level.
"""

import logging

# --------------------------------------------------------------------------
# Logging Setup
# --------------------------------------------------------------------------
# Library logs are discarded unless the consuming application configures
# logging for this logger.
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())
logger.propagate = False

# --------------------------------------------------------------------------
# Models, contexts and exceptions
# --------------------------------------------------------------------------
from .base.context import ModelContext, ModelFieldContext, ModelsPageContext
from .base.exceptions import (ConcurrentModificationException, DecodeException,
                              DocumentMappingException,
                              KeyAlreadyExistsException, MigrationException,
                              ObjectNotFoundException, PersistenceException,
                              ResponseAlreadySentError,
                              ValidationErrorException)
from .base.interfaces import (ElementByIdMatcher, ElementByIndexMatcher,
                              ElementMatcher, FieldAccessor,
                              search_element_by_id, search_element_by_index)
from .base.model import DocumentModel, Model, TimestampedModel
from .base.responses import (ErrorMessage, OperationResponse, ResponseHandler,
                             response_failed_with)

# --------------------------------------------------------------------------
# Query Building Exports
# --------------------------------------------------------------------------
from .base.aggregation import AggregationBuilder
from .base.query import FindOptions, QueryBuilder, query_param_to_sort

# --------------------------------------------------------------------------
# Repository Implementation Exports
# --------------------------------------------------------------------------
from .db_implementations.mongodb_repository import MongoDBRepository

# --------------------------------------------------------------------------
# __all__ Definition
# --------------------------------------------------------------------------
__all__ = [
    # Models and contexts
    "Model",
    "DocumentModel",
    "TimestampedModel",
    "ModelContext",
    "ModelFieldContext",
    "ModelsPageContext",
    # Collaborators
    "FieldAccessor",
    "ElementMatcher",
    "ElementByIdMatcher",
    "ElementByIndexMatcher",
    "search_element_by_id",
    "search_element_by_index",
    # Responses
    "ErrorMessage",
    "OperationResponse",
    "ResponseHandler",
    "response_failed_with",
    # Exceptions
    "ObjectNotFoundException",
    "KeyAlreadyExistsException",
    "ConcurrentModificationException",
    "PersistenceException",
    "DocumentMappingException",
    "MigrationException",
    "DecodeException",
    "ValidationErrorException",
    "ResponseAlreadySentError",
    # Query
    "QueryBuilder",
    "FindOptions",
    "query_param_to_sort",
    "AggregationBuilder",
    # Implementations
    "MongoDBRepository",
    # Logging
    "logger",
]
