from fastapi import APIRouter, Depends, File, Header, HTTPException, Query, Request, UploadFile, WebSocket, WebSocketDisconnect
from typing import List, Optional
import logging

from pydantic import ValidationError

from excelview.errors import AuthRequiredError, ParseError, SyncError
from excelview.models.file import FileResponse, RowsPage, TablePreview, TableUpload, UploadResponse
from excelview.models.records import ParsedTable
from excelview.services import file_service, sync_engine
from excelview.services.table_store import TableStore

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/files",
    tags=["files"],
)


def get_store(request: Request) -> TableStore:
    return request.app.state.store


def get_current_uid(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    """Principal set by the auth layer in front of the API"""
    return x_user_id


def sync_error_status(exc: SyncError) -> int:
    return 403 if exc.permission_denied else 502


def _auth_required(exc: AuthRequiredError) -> HTTPException:
    return HTTPException(status_code=401, detail=str(exc))


@router.post("/preview", response_model=TablePreview)
async def preview_file(file: UploadFile = File(...)):
    """Parse a spreadsheet and return its table without storing it"""
    try:
        table = await file_service.read_upload(file)
    except ParseError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return TablePreview(
        file_name=table.file_name,
        headers=table.headers,
        rows=table.rows,
        row_count=table.row_count,
    )


@router.post("/", response_model=UploadResponse)
async def upload_table(
    payload: TableUpload,
    request: Request,
    store: TableStore = Depends(get_store),
    uid: Optional[str] = Depends(get_current_uid),
):
    """Store a previewed table as a new file"""
    table = ParsedTable(file_name=payload.file_name, headers=payload.headers, rows=payload.rows)
    try:
        result = await sync_engine.upload_table(
            store, uid, table, settle_delay=request.app.state.settings.settle_delay
        )
    except AuthRequiredError as e:
        raise _auth_required(e)
    except SyncError as e:
        raise HTTPException(status_code=sync_error_status(e), detail=str(e))

    return UploadResponse(id=result.file_id, file_name=table.file_name, row_count=result.row_count)


@router.get("/", response_model=List[FileResponse])
async def get_files(
    store: TableStore = Depends(get_store),
    uid: Optional[str] = Depends(get_current_uid),
):
    """Get all uploaded files, newest first"""
    try:
        files = await file_service.get_files(store, uid)
    except AuthRequiredError as e:
        raise _auth_required(e)
    return [FileResponse.from_record(f) for f in files]


@router.get("/{file_id}", response_model=FileResponse)
async def get_file(
    file_id: str,
    store: TableStore = Depends(get_store),
    uid: Optional[str] = Depends(get_current_uid),
):
    """Get file by ID"""
    try:
        file = await file_service.get_file(store, uid, file_id)
    except AuthRequiredError as e:
        raise _auth_required(e)
    if not file:
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse.from_record(file)


@router.get("/{file_id}/rows", response_model=RowsPage)
async def get_file_rows(
    file_id: str,
    search: str = Query(""),
    page: int = Query(1),
    store: TableStore = Depends(get_store),
    uid: Optional[str] = Depends(get_current_uid),
):
    """Get one page of a stored file's rows, filtered by the search term"""
    try:
        file = await file_service.get_file(store, uid, file_id)
        if not file:
            raise HTTPException(status_code=404, detail="File not found")
        result, total_rows = await file_service.get_rows_page(store, uid, file, search, page)
    except AuthRequiredError as e:
        raise _auth_required(e)

    return RowsPage(
        id=file.id,
        file_name=file.file_name,
        headers=file.headers,
        rows=result.rows,
        page=result.page,
        page_size=result.page_size,
        total_pages=result.total_pages,
        total_rows=total_rows,
        matching_rows=result.matching_rows,
        search=search,
    )


@router.delete("/{file_id}")
async def delete_file(
    file_id: str,
    store: TableStore = Depends(get_store),
    uid: Optional[str] = Depends(get_current_uid),
):
    """Delete a file and all of its rows"""
    try:
        file = await file_service.get_file(store, uid, file_id)
        if not file:
            raise HTTPException(status_code=404, detail="File not found")
        deleted = await sync_engine.remove_file(store, uid, file_id)
    except AuthRequiredError as e:
        raise _auth_required(e)
    except SyncError as e:
        raise HTTPException(status_code=sync_error_status(e), detail=str(e))

    return {"message": f"File '{file.file_name}' deleted successfully", "rows_deleted": deleted}


@router.websocket("/ws/{client_id}")
async def upload_websocket(websocket: WebSocket, client_id: str):
    """
    WebSocket endpoint for uploads with live progress.

    The client sends {"action": "upload", "file_name", "headers", "rows"} and
    receives progress events followed by a complete or error event.
    """
    await websocket.accept()
    store: TableStore = websocket.app.state.store
    settle_delay = websocket.app.state.settings.settle_delay
    uid = websocket.query_params.get("uid") or websocket.headers.get("x-user-id")

    async def send_progress(value: int):
        await websocket.send_json({"type": "progress", "progress": value})

    try:
        while True:
            try:
                command = await websocket.receive_json()
            except ValueError:
                await websocket.send_json({"type": "error", "message": "Commands must be JSON"})
                continue

            if not isinstance(command, dict) or command.get("action") != "upload":
                await websocket.send_json({"type": "error", "message": "Unknown action"})
                continue

            try:
                payload = TableUpload(
                    file_name=command.get("file_name", ""),
                    headers=command.get("headers", []),
                    rows=command.get("rows", []),
                )
            except ValidationError as e:
                await websocket.send_json({"type": "error", "message": str(e)})
                continue

            table = ParsedTable(file_name=payload.file_name, headers=payload.headers, rows=payload.rows)
            try:
                result = await sync_engine.upload_table(
                    store, uid, table, progress_callback=send_progress, settle_delay=settle_delay
                )
            except AuthRequiredError as e:
                await websocket.send_json({"type": "error", "status": 401, "message": str(e)})
                continue
            except SyncError as e:
                await websocket.send_json({
                    "type": "error",
                    "status": sync_error_status(e),
                    "message": str(e),
                    "file_id": e.file_id,
                })
                continue

            await websocket.send_json({
                "type": "complete",
                "file_id": result.file_id,
                "row_count": result.row_count,
            })
    except WebSocketDisconnect:
        logger.info("Upload client %s disconnected", client_id)
