"""Base repository with ownership-scoped CRUD operations"""
from typing import Generic, TypeVar, Type, Optional, List, Dict, Any
from pydantic import BaseModel
from supabase import Client  # type: ignore

T = TypeVar('T', bound=BaseModel)
CreateT = TypeVar('CreateT', bound=BaseModel)
UpdateT = TypeVar('UpdateT', bound=BaseModel)


class OwnedRepository(Generic[T, CreateT, UpdateT]):
    """
    Base repository for rows that belong to a single user.
    Every read and write is filtered by the owner column, so one user can
    never see or touch another user's rows.
    Hides Supabase implementation details from the rest of the application.
    """

    owner_column = "user_id"

    def __init__(self, client: Client, table_name: str, model_class: Type[T]):
        self._client = client
        self._table_name = table_name
        self._model_class = model_class

    def _table(self):
        return self._client.table(self._table_name)

    def _to_model(self, data: Dict[str, Any]) -> T:
        """Convert database dict to domain model"""
        return self._model_class(**data)

    def _to_models(self, data: List[Dict[str, Any]]) -> List[T]:
        """Convert list of database dicts to domain models"""
        return [self._to_model(item) for item in data]

    async def find_by_id(self, id: str, user_id: str) -> Optional[T]:
        """Find a single owned record by ID"""
        response = (
            self._table()
            .select("*")
            .eq("id", id)
            .eq(self.owner_column, user_id)
            .execute()
        )

        if not response.data:
            return None

        return self._to_model(response.data[0])

    async def find_by_owner(self, user_id: str, order_by: Optional[str] = None) -> List[T]:
        """Find all records owned by a user"""
        query = self._table().select("*").eq(self.owner_column, user_id)

        if order_by:
            query = query.order(order_by)

        response = query.execute()
        return self._to_models(response.data or [])

    async def create(self, data: CreateT) -> T:
        """Create a new record"""
        data_dict = data.model_dump(exclude_unset=False, mode='json')
        response = self._table().insert(data_dict).execute()

        if not response.data:
            raise ValueError("Failed to create record")

        return self._to_model(response.data[0])

    async def update(self, id: str, user_id: str, data: UpdateT) -> None:
        """Write only the fields that were set on the update model"""
        data_dict = data.model_dump(exclude_unset=True, mode='json')

        if not data_dict:
            # No fields to update
            return

        (
            self._table()
            .update(data_dict)
            .eq("id", id)
            .eq(self.owner_column, user_id)
            .execute()
        )

    async def delete(self, id: str, user_id: str) -> None:
        """Delete an owned record by ID"""
        (
            self._table()
            .delete()
            .eq("id", id)
            .eq(self.owner_column, user_id)
            .execute()
        )
