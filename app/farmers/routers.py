import logging

from fastapi import APIRouter, HTTPException, Depends
from postgrest.exceptions import APIError
from supabase import Client

from app.core.supabase_client import get_supabase
from app.core.dependencies import get_current_user_id
from app.utils.display_names import FALLBACK_NAME, profile_display_name

from .schemas import FarmersSearchResponseModel


logger = logging.getLogger(__name__)
router = APIRouter()

MIN_QUERY_LENGTH = 2
MAX_RESULTS = 10


@router.get("/search", response_model=FarmersSearchResponseModel, status_code=200)
def search_farmers(
    q: str,
    user_id: str = Depends(get_current_user_id),
    client: Client = Depends(get_supabase),
):
    """
    Search for farmers to message by name or email.

    Performs a case-insensitive substring match on `full_name` and `email`
    and returns up to 10 profiles, never including yourself.

    **Input**
    - `q`: Search term (minimum 2 characters). Shorter terms return no results.

    **Returns**
    - `farmers`: `id`, `fullName` (email name or "Farmer" when no name is
      set), `avatarUrl`, `location`

    **Errors**
    - `500`: Unexpected server or Supabase database error.
    """
    query = q.strip()
    if len(query) < MIN_QUERY_LENGTH:
        return {"farmers": []}

    # PostgREST "or" filters are comma separated
    pattern = f"%{query.replace(',', ' ')}%"

    try:
        response = (
            client.table("user_profiles")
            .select("id, full_name, email, avatar_url, location")
            .or_(f"full_name.ilike.{pattern},email.ilike.{pattern}")
            .neq("id", user_id)
            .limit(MAX_RESULTS)
            .execute()
        )
    except APIError as e:
        logger.error(f"farmer_search_failed query={query} error={e}")
        raise HTTPException(status_code=500, detail="Server/Database error.")

    return {
        "farmers": [
            {
                "id": profile["id"],
                "full_name": profile_display_name(profile) or FALLBACK_NAME,
                "avatar_url": profile.get("avatar_url"),
                "location": profile.get("location"),
            }
            for profile in response.data or []
        ]
    }
