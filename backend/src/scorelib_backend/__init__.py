"""
ScoreLibrary 后端：本地个人乐谱库。

定位：
- 上传 MIDI / MXL（或扫描图片），调用 MuseScore（及可选的 Audiveris）生成 PDF/MXL/MIDI；
- 每个曲目一个目录，附带 meta.json；通过 HTTP 提供浏览、检索、改名、打标签、删除、下载。
"""
