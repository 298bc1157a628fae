from distrifin.models import Route, CustomerStatus
from distrifin.store import DataStore, DataStoreError
from distrifin.utils.logging_utils import log_action
import logging

logger = logging.getLogger(__name__)


class RouteError(Exception):
    """Custom exception for route operations"""
    pass


def serialize_route(route):
    return {
        'route_id': str(route.id),
        'route_name': route.route_name,
        'description': route.description,
        'status': route.status,
    }


def get_all_routes():
    try:
        return [serialize_route(r) for r in Route.query.order_by(Route.route_name).all()]
    except Exception as e:
        logger.error(f"Error getting routes: {str(e)}")
        raise RouteError("Failed to retrieve routes")


def add_route(data, current_user, ip_address, user_agent):
    route_name = str(data.get('route_name') or '').strip()
    if not route_name:
        raise ValueError("Route name is required")
    if Route.query.filter(Route.route_name.ilike(route_name)).first():
        raise ValueError(f"Route {route_name} already exists")

    store = DataStore()
    new_route = Route(
        route_name=route_name,
        description=data.get('description'),
        status=data.get('status') or CustomerStatus.ACTIVE.value
    )
    try:
        store.add(new_route)
        log_action(current_user, 'CREATE_ROUTE', f"Created route {route_name}", ip_address, user_agent, store)
    except DataStoreError as e:
        logger.error(f"Error adding route: {str(e)}")
        raise RouteError("Failed to add route")
    return new_route


def update_route(route_id, data, current_user, ip_address, user_agent):
    store = DataStore()
    route = store.get(Route, route_id)
    if not route:
        return None

    fields = {}
    if 'route_name' in data:
        route_name = str(data['route_name'] or '').strip()
        if not route_name:
            raise ValueError("Route name is required")
        fields['route_name'] = route_name
    if 'description' in data:
        fields['description'] = data['description']
    if data.get('status'):
        if data['status'] not in [s.value for s in CustomerStatus]:
            raise ValueError(f"Invalid status: {data['status']}")
        fields['status'] = data['status']

    try:
        store.update(route, **fields)
        log_action(current_user, 'UPDATE_ROUTE', f"Updated route {route.route_name}", ip_address, user_agent, store)
    except DataStoreError as e:
        logger.error(f"Error updating route: {str(e)}")
        raise RouteError("Failed to update route")
    return route
