# backend/pestalert/api.py
from fastapi import APIRouter, Depends, HTTPException, Request

from .errors import RegistryUnavailable, SubscriptionNotFound
from .logging_setup import logger
from .schemas import (
    AlertSubscription,
    ForceEvaluateRequest,
    Location,
    RiskAssessment,
    SubscribeRequest,
    SubscriptionStats,
    UnsubscribeResponse,
)

router = APIRouter()


def get_services(request: Request):
    return request.app.state.services


@router.post("/subscriptions", response_model=AlertSubscription, status_code=201)
def subscribe(payload: SubscribeRequest, services=Depends(get_services)):
    location = Location(lat=payload.lat, lon=payload.lon, country=payload.country, region=payload.region)
    try:
        return services.registry.subscribe(
            payload.subscriber_id, payload.contact_address, location, payload.min_severity
        )
    except RegistryUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.get("/subscriptions/stats", response_model=SubscriptionStats)
def subscription_stats(services=Depends(get_services)):
    try:
        return services.registry.stats()
    except RegistryUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.get("/subscriptions/{subscriber_id}", response_model=AlertSubscription)
def get_subscription(subscriber_id: str, services=Depends(get_services)):
    try:
        return services.registry.get(subscriber_id)
    except SubscriptionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except RegistryUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.delete("/subscriptions/{subscriber_id}", response_model=UnsubscribeResponse)
def unsubscribe(subscriber_id: str, services=Depends(get_services)):
    try:
        done = services.registry.unsubscribe(subscriber_id)
    except RegistryUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))
    return UnsubscribeResponse(subscriber_id=subscriber_id, unsubscribed=done)


@router.post("/evaluate", response_model=RiskAssessment)
def force_evaluate(payload: ForceEvaluateRequest, services=Depends(get_services)):
    """
    Run the full pipeline for one coordinate and return the assessment.
    Nothing is dispatched and no subscription is touched.
    """
    return services.engine.force_evaluate(
        payload.lat, payload.lon, payload.subscriber_id, validate=payload.validate_sources
    )


@router.post("/jobs/{job_name}/run")
def run_job(job_name: str, services=Depends(get_services)):
    if job_name not in services.runner.job_names:
        raise HTTPException(status_code=404, detail=f"unknown job: {job_name}")
    logger.info(f"[api] manual run requested: {job_name}")
    result = services.runner.run_now(job_name)
    if result is None:
        return {"job": job_name, "result": None}
    return {"job": job_name, "result": result.model_dump(mode="json")}
