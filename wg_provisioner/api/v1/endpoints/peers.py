"""
WireGuard Peer Provisioning API Endpoint

FastAPI endpoint exposing the single ProvisionPeer operation.

Provides:
- POST /api/v1/peers - Provision new peer

Errors map to HTTP status codes; the provisioning core itself never formats
user-facing output.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status

from wg_provisioner.config import load_settings
from wg_provisioner.exceptions import (
    CapacityExceededError,
    ConfigWriteFailedError,
    DuplicateNameError,
    InvalidNameError,
    KeyGenerationFailedError,
    LockTimeoutError,
    PoolExhaustedError,
    ProvisioningError,
)
from wg_provisioner.models.peer import ProvisioningResult, ProvisionPeerRequest
from wg_provisioner.services.wireguard_provisioning_service import (
    WireGuardProvisioningService,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/peers", tags=["WireGuard", "Peers"])


# ============================================================================
# Dependency Injection
# ============================================================================

# Singleton instance of provisioning service
_provisioning_service: Optional[WireGuardProvisioningService] = None


def get_provisioning_service() -> WireGuardProvisioningService:
    """
    Get or create provisioning service instance

    Configuration is loaded and validated once, on first use.

    Returns:
        WireGuardProvisioningService instance
    """
    global _provisioning_service

    if _provisioning_service is None:
        _provisioning_service = WireGuardProvisioningService(settings=load_settings())

    return _provisioning_service


# ============================================================================
# API Endpoints
# ============================================================================

@router.post(
    "",
    response_model=ProvisioningResult,
    status_code=status.HTTP_201_CREATED,
    summary="Provision new WireGuard peer",
    description="""
    Provision a new WireGuard peer.

    1. Validates the peer name
    2. Allocates the first free address in the overlay
    3. Generates peer keys and a preshared key
    4. Records the peer and appends it to the server configuration
    5. Writes the client profile and reloads the interface

    **Errors:**
    - 422: Invalid peer name
    - 409: Peer already provisioned
    - 503: Capacity reached, address pool exhausted, or lock timeout
    - 500: Key generation or configuration write failure
    """
)
def provision_peer(
    request: ProvisionPeerRequest,
    service: WireGuardProvisioningService = Depends(get_provisioning_service)
) -> ProvisioningResult:
    """
    Provision a new WireGuard peer

    Returns:
        ProvisioningResult; reloaded=False when only the interface reload failed

    Raises:
        HTTPException: On provisioning errors
    """
    logger.info(f"Provisioning request received: name={request.name}")

    try:
        result = service.provision_peer(request.name)

    except InvalidNameError as e:
        logger.warning(f"Invalid peer name: {e}")
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e)
        )

    except DuplicateNameError as e:
        logger.warning(f"Duplicate peer provisioning attempt: {e}")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": str(e),
                "existing_address": e.existing_address
            }
        )

    except (CapacityExceededError, PoolExhaustedError, LockTimeoutError) as e:
        logger.error(f"Cannot provision {request.name}: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e)
        )

    except (KeyGenerationFailedError, ConfigWriteFailedError) as e:
        logger.error(f"Provisioning error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Provisioning failed: {str(e)}"
        )

    except ProvisioningError as e:
        logger.error(f"Provisioning error: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Provisioning failed: {str(e)}"
        )

    if not result.reloaded:
        logger.warning(
            f"Peer {result.name} provisioned but interface reload failed: "
            f"{result.reload_error}"
        )

    return result
