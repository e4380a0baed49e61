# src/async_model_resources/db_implementations/mongodb_repository.py

import json
import logging
import re
from logging import LoggerAdapter
from typing import Any, Callable, Dict, List, Optional, Sequence, Type, Union

# --- Motor Driver Import ---
from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import (AsyncIOMotorClient, AsyncIOMotorCollection,
                                 AsyncIOMotorDatabase)
from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError

# --- Framework Imports ---
from async_model_resources.base.aggregation import (AggregationBuilder,
                                                    split_element_path)
from async_model_resources.base.exceptions import (
    ConcurrentModificationException, DocumentMappingException,
    KeyAlreadyExistsException, MigrationException, ObjectNotFoundException,
    PersistenceException)
from async_model_resources.base.query import FindOptions
from async_model_resources.base.utils import prepare_for_storage

# --- Type Aliases ---
Document = Dict[str, Any]
DocumentMapper = Callable[[Document], Document]
DocumentConverter = Callable[[Document], Document]
SchemaVersion = Union[None, bool, int, float, str, List[Any], Dict[str, Any]]

SCHEMA_VERSION_KEY = "schemaVersion"
REVISION_KEY = "_revision"
CREATION_TS_KEY = "_creationTs"
ID_KEY = "_id"

base_logger = logging.getLogger(__name__)


# --- Schema version helpers ---
def is_current_schema_version(value: Any, current: SchemaVersion) -> bool:
    """Check if a stored schema version is the current one (same type and value)."""
    return type(value) is type(current) and value == current


def describe_schema_version(value: Any) -> str:
    """Render a stored schema version, whatever its representation, for the logs."""
    if value is None:
        return "undefined"
    try:
        return json.dumps(value, sort_keys=True, default=str)
    except (TypeError, ValueError):
        return repr(value)


def id_query(id: Any) -> Document:
    """Query to match a document by the store identifier, given as an ObjectId or its string."""
    if isinstance(id, str):
        try:
            return {ID_KEY: ObjectId(id)}
        except (InvalidId, TypeError):
            return {ID_KEY: id}
    return {ID_KEY: id}


class MongoDBRepository:
    """
    Access to the collections of a MongoDB database using Motor.

    Every document written by the repository is stamped with the current
    schema version, so the collections can be migrated when the models change.
    Documents also carry a revision counter that is incremented on each update,
    which allows rejecting updates over a document modified since it was read.
    """

    def __init__(
        self,
        client: AsyncIOMotorClient,
        database_name: str,
        schema_version: SchemaVersion,
    ):
        """
        Initialize the repository.

        Args:
            client: An instance of AsyncIOMotorClient.
            database_name: The name of the MongoDB database.
            schema_version: The value stamped on the documents. Any JSON value
                            is accepted, but it is usually the version of the
                            software that defines the models.
        """
        self._client = client
        self._database_name = database_name
        self._db: AsyncIOMotorDatabase = client[database_name]
        self._schema_version = schema_version
        self._logger = base_logger
        self._logger.info(
            f"MongoDBRepository initialized for database '{database_name}' "
            f"with schema version {describe_schema_version(schema_version)}."
        )

    @property
    def schema_version(self) -> SchemaVersion:
        return self._schema_version

    def collection(self, collection_name: str) -> AsyncIOMotorCollection:
        return self._db[collection_name]

    def needs_migration_query(self) -> Document:
        """Match the documents whose schema version is undefined or not the current one."""
        return {SCHEMA_VERSION_KEY: {"$ne": self._schema_version}}

    # --- Search ---

    async def search_page_object(
        self,
        collection_name: str,
        query: Document,
        options: FindOptions,
        result_key: str,
        logger: LoggerAdapter,
        document_mapper: Optional[DocumentMapper] = None,
    ) -> Document:
        """
        Search for a page of documents.

        Returns:
            A page with the 'offset', the 'total' number of matching documents
            and, only when the page is not empty, the documents on `result_key`.
        """
        logger.debug(
            f"Searching page of '{collection_name}' query: {query}, "
            f"skip: {options.skip}, limit: {options.limit}, sort: {options.sort}"
        )
        try:
            collection = self.collection(collection_name)
            total = await collection.count_documents(query)
            page: Document = {"offset": options.skip, "total": total}
            if total == 0 or options.skip >= total:
                logger.debug(f"Empty page of '{collection_name}' ({total} matches)")
                return page

            projection = options.projection or {SCHEMA_VERSION_KEY: False}
            cursor = collection.find(
                query,
                projection,
                skip=options.skip,
                limit=options.limit,
                sort=options.sort_spec(),
            )
            documents = await cursor.to_list(length=None)
            documents = [self._map(document, document_mapper) for document in documents]
            if documents:
                page[result_key] = documents
            logger.info(
                f"Found {len(documents)} of {total} documents on '{collection_name}'"
            )
            return page
        except Exception as e:
            self._handle_db_error(e, logger, f"searching page of '{collection_name}'")

    async def aggregate_page_object(
        self,
        collection_name: str,
        query: Document,
        order: Optional[Dict[str, int]],
        offset: int,
        limit: int,
        element_path: str,
        logger: LoggerAdapter,
    ) -> Document:
        """
        Search for a page of the elements nested on the arrays of `element_path`.

        The elements are returned on the last segment of the path, which is
        omitted when the page is empty.
        """
        segments = split_element_path(element_path)
        if not segments:
            raise ValueError("An element path is required to aggregate a page.")

        total = await self.count_aggregation(collection_name, segments, query, logger)
        page: Document = {"offset": offset, "total": total}
        if total == 0 or offset >= total:
            return page

        page_limit = limit if limit > 0 else total - offset
        pipeline = (
            AggregationBuilder()
            .unwind_path(segments)
            .match(query)
            .sort(order, offset, page_limit)
            .build()
        )
        logger.debug(f"Aggregating '{collection_name}' with {pipeline}")
        try:
            cursor = self.collection(collection_name).aggregate(pipeline)
            documents = await cursor.to_list(length=None)
        except Exception as e:
            self._handle_db_error(e, logger, f"aggregating page of '{collection_name}'")

        elements = []
        for document in documents:
            element: Any = document
            for segment in segments:
                element = element.get(segment) if isinstance(element, dict) else None
            elements.append(element)
        if elements:
            page[segments[-1]] = elements
        return page

    async def count_aggregation(
        self,
        collection_name: str,
        element_path: Sequence[str],
        query: Document,
        logger: LoggerAdapter,
    ) -> int:
        """Count the nested elements on `element_path` that match the query."""
        pipeline = AggregationBuilder().unwind_path(element_path).match(query).build()
        pipeline = pipeline + [{"$count": "total"}]
        logger.debug(f"Counting on '{collection_name}' with {pipeline}")
        try:
            cursor = self.collection(collection_name).aggregate(pipeline)
            results = await cursor.to_list(length=None)
        except Exception as e:
            self._handle_db_error(e, logger, f"counting elements of '{collection_name}'")
        if not results:
            return 0
        return int(results[0].get("total", 0))

    async def find_one_document(
        self,
        collection_name: str,
        query: Document,
        logger: LoggerAdapter,
        sort: Optional[Dict[str, int]] = None,
        document_mapper: Optional[DocumentMapper] = None,
        projection: Optional[Document] = None,
    ) -> Document:
        """
        Find the first document that matches the query.

        Raises:
            ObjectNotFoundException: If no document matches.
            DocumentMappingException: If the mapper fails.
        """
        logger.debug(f"Finding one document of '{collection_name}' matching {query}")
        options = FindOptions(sort=dict(sort or {}))
        try:
            document = await self.collection(collection_name).find_one(
                query,
                projection or {SCHEMA_VERSION_KEY: False},
                sort=options.sort_spec(),
            )
        except Exception as e:
            self._handle_db_error(e, logger, f"finding one document of '{collection_name}'")

        if document is None:
            logger.warning(f"No document of '{collection_name}' matches {query}")
            raise ObjectNotFoundException(
                f"Not found a document of '{collection_name}' that matches the query."
            )
        return self._map(document, document_mapper)

    # --- Store ---

    async def store_one_document(
        self,
        collection_name: str,
        document: Document,
        logger: LoggerAdapter,
        document_mapper: Optional[DocumentMapper] = None,
    ) -> Document:
        """
        Insert a new document.

        Returns:
            The stored document, with the generated identifier as a string on
            '_id' (or where the mapper moves it) and without the schema version.

        Raises:
            ValueError: If the document already defines an '_id'.
            KeyAlreadyExistsException: If a unique index rejects the document.
            DocumentMappingException: If the mapper fails.
        """
        if document is None:
            raise ValueError("No document to store.")
        if document.get(ID_KEY) is not None:
            raise ValueError(
                f"The document to store on '{collection_name}' can not define an '{ID_KEY}'."
            )

        stored = prepare_for_storage(dict(document))
        stored.pop(ID_KEY, None)
        stored[SCHEMA_VERSION_KEY] = self._schema_version
        stored[REVISION_KEY] = 0
        try:
            result = await self.collection(collection_name).insert_one(stored)
        except Exception as e:
            self._handle_db_error(e, logger, f"storing a document on '{collection_name}'")

        created = {
            key: value for key, value in stored.items() if key != SCHEMA_VERSION_KEY
        }
        created[ID_KEY] = str(result.inserted_id)
        logger.info(f"Stored document '{created[ID_KEY]}' on '{collection_name}'")
        return self._map(created, document_mapper)

    async def upsert_one_document(
        self,
        collection_name: str,
        query: Document,
        fields: Document,
        logger: LoggerAdapter,
        upsert: bool = True,
    ) -> Optional[str]:
        """
        Set the fields on the document that matches the query, inserting it when
        none matches.

        Returns:
            The identifier of the inserted document, or None if a document was updated.
        """
        if fields is None:
            raise ValueError("No fields to upsert.")
        values = prepare_for_storage(dict(fields))
        values.pop(ID_KEY, None)
        values.pop(REVISION_KEY, None)
        values[SCHEMA_VERSION_KEY] = self._schema_version
        try:
            result = await self.collection(collection_name).update_one(
                query, {"$set": values, "$inc": {REVISION_KEY: 1}}, upsert=upsert
            )
        except Exception as e:
            self._handle_db_error(e, logger, f"upserting a document on '{collection_name}'")

        if result.upserted_id is not None:
            logger.info(f"Inserted document '{result.upserted_id}' on '{collection_name}'")
            return str(result.upserted_id)
        if result.matched_count == 0:
            logger.warning(f"No document of '{collection_name}' matches {query}")
            raise ObjectNotFoundException(
                f"Not found a document of '{collection_name}' to update."
            )
        logger.info(f"Updated document of '{collection_name}' matching {query}")
        return None

    # --- Update ---

    async def update_one_document(
        self,
        collection_name: str,
        query: Document,
        fields: Document,
        logger: LoggerAdapter,
        expected_revision: Optional[int] = None,
    ) -> None:
        """
        Set the fields on the first document that matches the query. The fields
        with a None value are stored as null, and the creation time is never
        modified.

        Args:
            expected_revision: When given, the update is only applied if the
                               document still has this revision.

        Raises:
            ObjectNotFoundException: If no document matches.
            ConcurrentModificationException: If the document matches but its
                                             revision is not the expected one.
        """
        if fields is None:
            raise ValueError("No fields to update.")
        values = prepare_for_storage(dict(fields))
        for key in (ID_KEY, CREATION_TS_KEY, REVISION_KEY):
            values.pop(key, None)
        values[SCHEMA_VERSION_KEY] = self._schema_version

        update_filter = dict(query)
        if expected_revision is not None:
            update_filter[REVISION_KEY] = expected_revision
        logger.debug(f"Updating one document of '{collection_name}' matching {update_filter}")
        try:
            collection = self.collection(collection_name)
            result = await collection.update_one(
                update_filter, {"$set": values, "$inc": {REVISION_KEY: 1}}
            )
            if result.matched_count == 0:
                if expected_revision is not None and await collection.count_documents(
                    query, limit=1
                ):
                    logger.warning(
                        f"Document of '{collection_name}' matching {query} is not at "
                        f"revision {expected_revision}"
                    )
                    raise ConcurrentModificationException(
                        f"The document of '{collection_name}' was modified after "
                        f"revision {expected_revision}."
                    )
                logger.warning(f"No document of '{collection_name}' matches {query}")
                raise ObjectNotFoundException(
                    f"Not found a document of '{collection_name}' to update."
                )
        except Exception as e:
            self._handle_db_error(e, logger, f"updating a document of '{collection_name}'")
        logger.info(f"Updated one document of '{collection_name}'")

    async def update_collection(
        self,
        collection_name: str,
        query: Document,
        update: Document,
        logger: LoggerAdapter,
    ) -> int:
        """Apply an update document to all the matching documents and return how many changed."""
        logger.debug(f"Updating '{collection_name}' matching {query} with {update}")
        try:
            result = await self.collection(collection_name).update_many(query, update)
        except Exception as e:
            self._handle_db_error(e, logger, f"updating the collection '{collection_name}'")
        logger.info(f"Updated {result.modified_count} documents of '{collection_name}'")
        return result.modified_count

    # --- Delete ---

    async def delete_one_document(
        self, collection_name: str, query: Document, logger: LoggerAdapter
    ) -> None:
        """
        Raises:
            ObjectNotFoundException: If no document was deleted.
        """
        logger.debug(f"Deleting one document of '{collection_name}' matching {query}")
        try:
            result = await self.collection(collection_name).delete_one(query)
        except Exception as e:
            self._handle_db_error(e, logger, f"deleting a document of '{collection_name}'")
        if result.deleted_count == 0:
            logger.warning(f"No document of '{collection_name}' matches {query}")
            raise ObjectNotFoundException(
                f"Not found a document of '{collection_name}' to delete."
            )
        logger.info(f"Deleted one document of '{collection_name}'")

    async def delete_documents(
        self, collection_name: str, query: Document, logger: LoggerAdapter
    ) -> int:
        """Delete all the matching documents; deleting nothing is an error."""
        logger.debug(f"Deleting documents of '{collection_name}' matching {query}")
        try:
            result = await self.collection(collection_name).delete_many(query)
        except Exception as e:
            self._handle_db_error(e, logger, f"deleting documents of '{collection_name}'")
        if result.deleted_count == 0:
            logger.warning(f"No document of '{collection_name}' matches {query}")
            raise ObjectNotFoundException(
                f"Not found documents of '{collection_name}' to delete."
            )
        logger.info(f"Deleted {result.deleted_count} documents of '{collection_name}'")
        return result.deleted_count

    # --- Schema migration ---

    async def migrate_collection(
        self, collection_name: str, model_type: Type[Any], logger: LoggerAdapter
    ) -> int:
        """
        Convert the documents that are not on the current schema version to the
        shape of the model. The fields the model does not define are dropped.

        Returns:
            The number of migrated documents.

        Raises:
            MigrationException: If a document can not be migrated. The migration
                                stops on the first failure.
        """

        def convert(document: Document) -> Document:
            return model_type.from_document(document).to_document()

        try:
            max_documents = await self.collection(collection_name).count_documents({})
        except Exception as e:
            self._handle_db_error(e, logger, f"counting documents of '{collection_name}'")
        logger.info(
            f"Migrating '{collection_name}' to {model_type.__name__} "
            f"({max_documents} documents)"
        )
        return await self.migrate_one_document(
            collection_name, convert, self.needs_migration_query(), max_documents, logger
        )

    async def migrate_one_document(
        self,
        collection_name: str,
        converter: DocumentConverter,
        query: Document,
        max_documents: int,
        logger: LoggerAdapter,
    ) -> int:
        """
        Migrate, one at a time and in the order they were inserted, the documents
        that match the query, until none remain or `max_documents` are migrated.

        Raises:
            MigrationException: If a document can not be converted or replaced,
                                or documents still match after `max_documents`.
        """
        collection = self.collection(collection_name)
        migrated = 0
        while True:
            try:
                document = await collection.find_one(query, sort=[(ID_KEY, ASCENDING)])
            except Exception as e:
                raise MigrationException(
                    f"Cannot search the documents to migrate on '{collection_name}'."
                ) from e
            if document is None:
                logger.info(f"Migrated {migrated} documents of '{collection_name}'")
                return migrated
            if migrated >= max_documents:
                raise MigrationException(
                    f"There are still documents to migrate on '{collection_name}' "
                    f"after migrating {migrated}."
                )

            document_id = document.get(ID_KEY)
            logger.debug(
                f"Migrating document '{document_id}' of '{collection_name}' from "
                f"schema version {describe_schema_version(document.get(SCHEMA_VERSION_KEY))}"
            )
            try:
                replacement = dict(converter(document))
            except Exception as e:
                logger.error(
                    f"Cannot convert document '{document_id}' of '{collection_name}': {e}"
                )
                raise MigrationException(
                    f"Cannot convert the document '{document_id}' of '{collection_name}'."
                ) from e
            replacement.pop(ID_KEY, None)
            replacement[SCHEMA_VERSION_KEY] = self._schema_version
            if REVISION_KEY in document:
                replacement[REVISION_KEY] = document[REVISION_KEY]

            try:
                result = await collection.replace_one({ID_KEY: document_id}, replacement)
            except Exception as e:
                raise MigrationException(
                    f"Cannot replace the document '{document_id}' of '{collection_name}'."
                ) from e
            if result.matched_count == 0:
                raise MigrationException(
                    f"The document '{document_id}' of '{collection_name}' disappeared "
                    "while it was migrated."
                )
            migrated += 1

    async def update_schema_version_on_collection(
        self, collection_name: str, logger: LoggerAdapter
    ) -> int:
        """Stamp the current schema version on the documents without converting them."""
        return await self.update_collection(
            collection_name,
            self.needs_migration_query(),
            {"$set": {SCHEMA_VERSION_KEY: self._schema_version}},
            logger,
        )

    # --- Helpers ---

    def _map(
        self, document: Document, document_mapper: Optional[DocumentMapper]
    ) -> Document:
        if document_mapper is None:
            return document
        try:
            return document_mapper(document)
        except Exception as e:
            raise DocumentMappingException(f"Cannot map the document: {e}") from e

    def _handle_db_error(
        self, error: Exception, logger: LoggerAdapter, context: str = "operation"
    ) -> None:
        if isinstance(
            error,
            (
                ObjectNotFoundException,
                ConcurrentModificationException,
                PersistenceException,
                ValueError,
            ),
        ):
            raise error
        logger.error(f"MongoDB error during {context}: {error}", exc_info=True)
        if isinstance(error, DuplicateKeyError):
            match = re.search(r"index: (\S+).* dup key: ({.*?})", str(error))
            index = match.group(1) if match else "unknown"
            key = match.group(2) if match else "unknown"
            raise KeyAlreadyExistsException(
                f"Duplicate key error on index '{index}'. Key: {key}"
            ) from error
        raise PersistenceException(
            f"An unexpected MongoDB error occurred during {context}"
        ) from error
